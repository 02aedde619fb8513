# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Relay task dispatcher.

Runs one relay task per accepted event on a shared thread pool:
completion, formatting, delivery.  Tasks are tracked in an
``InFlightTaskSet`` so shutdown can wait for them with a deadline.

Concurrency is bounded by the pool size.  ``dispatch()`` never blocks:
when all workers are busy, new tasks wait in the executor's queue while
the event stream keeps accepting events.  Replies to different events
may be delivered in any order.
"""

from __future__ import annotations

import concurrent.futures
import functools
import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from difyrelay.completion.gateway import CompletionError, CompletionGateway
from difyrelay.relay.channel import (
    DeliveryClient,
    DeliveryFailure,
    InboundEvent,
)
from difyrelay.relay.formatter import format_interactive


logger = logging.getLogger(__name__)

#: Default drain deadline on shutdown.
DEFAULT_DRAIN_TIMEOUT = 30.0

#: Completion user ID for events without a sender.
ANONYMOUS_USER = "anonymous"


class InFlightTaskSet:
    """Thread-safe set of running task IDs with a wait-for-empty operation.

    A monitor (lock plus condition) guards the set: workers add and
    remove concurrently while the shutdown path waits for it to empty.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._tasks: set[str] = set()

    def add(self, task_id: str) -> None:
        """Register a task.

        Raises:
            ValueError: If the task is already registered.
        """
        with self._cond:
            if task_id in self._tasks:
                raise ValueError(f"Task already in flight: {task_id}")
            self._tasks.add(task_id)

    def discard(self, task_id: str) -> bool:
        """Deregister a task and wake waiters if the set became empty.

        Returns:
            True if the task was registered, False otherwise.
        """
        with self._cond:
            if task_id not in self._tasks:
                return False
            self._tasks.remove(task_id)
            if not self._tasks:
                self._cond.notify_all()
            return True

    def wait_empty(self, timeout: float | None) -> bool:
        """Block until no tasks remain or *timeout* seconds pass.

        Returns:
            True if the set is empty, False on timeout.
        """
        with self._cond:
            return self._cond.wait_for(lambda: not self._tasks, timeout)

    def __len__(self) -> int:
        with self._cond:
            return len(self._tasks)


class AsyncDispatcher:
    """Runs relay tasks on a bounded worker pool.

    Args:
        gateway: Completion backend.
        delivery: Reply delivery client.
        max_workers: Maximum relay tasks running at once.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        delivery: DeliveryClient,
        *,
        max_workers: int = 16,
    ) -> None:
        self._gateway = gateway
        self._delivery = delivery
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="RelayWorker",
        )
        self._tasks = InFlightTaskSet()
        self._task_ids = itertools.count(1)
        # Serializes dispatch against close so no task is registered
        # after the pool has been shut down.
        self._submit_lock = threading.Lock()
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Number of registered tasks (running or queued)."""
        return len(self._tasks)

    def dispatch(self, event: InboundEvent, query: str) -> bool:
        """Start a relay task for *event* and return immediately.

        The task is registered before it is submitted, so a concurrent
        ``drain()`` always sees it.

        Args:
            event: The accepted inbound event.
            query: Text to send to the completion backend.

        Returns:
            True if the task was started, False if the dispatcher is
            closed.
        """
        with self._submit_lock:
            if self._closed:
                logger.warning(
                    "Dispatcher closed, dropping message %s",
                    event.message_id,
                )
                return False

            task_id = f"relay-{next(self._task_ids):06d}"
            self._tasks.add(task_id)
            future = self._pool.submit(self._run_task, task_id, event, query)

        future.add_done_callback(functools.partial(self._on_task_done, task_id))
        logger.debug(
            "Task %s: dispatched message %s", task_id, event.message_id
        )
        return True

    def drain(self, timeout: float = DEFAULT_DRAIN_TIMEOUT) -> bool:
        """Wait until all tasks finish or *timeout* seconds pass.

        Running tasks are never cancelled; on timeout they are left to
        finish or be abandoned with the process.

        Returns:
            True if all tasks finished, False on timeout.
        """
        pending = len(self._tasks)
        if pending:
            logger.info(
                "Waiting for %d relay task(s) (timeout: %.0fs)...",
                pending,
                timeout,
            )
        if self._tasks.wait_empty(timeout):
            return True
        logger.warning(
            "%d relay task(s) did not complete within %.0fs",
            len(self._tasks),
            timeout,
        )
        return False

    def close(self, timeout: float = DEFAULT_DRAIN_TIMEOUT) -> bool:
        """Stop accepting tasks, drain, and release the worker pool.

        Tasks still queued after the deadline are cancelled; tasks
        already running are abandoned, not interrupted.

        Returns:
            True if all tasks finished before the deadline.
        """
        with self._submit_lock:
            self._closed = True
        drained = self.drain(timeout)
        self._pool.shutdown(wait=False, cancel_futures=True)
        logger.info("Relay worker pool shut down")
        return drained

    def _on_task_done(self, task_id: str, future: Future[None]) -> None:
        """Deregister a finished, failed, or cancelled task."""
        if not self._tasks.discard(task_id):
            logger.error("Task %s: deregistered more than once", task_id)

        try:
            exception = future.exception()
            if exception:
                logger.error("Task %s: failed: %s", task_id, exception)
        except concurrent.futures.CancelledError:
            logger.debug("Task %s: cancelled before it started", task_id)

    def _run_task(self, task_id: str, event: InboundEvent, query: str) -> None:
        """Worker entry point: complete, format, deliver.

        Every failure ends the task and is logged here; nothing
        propagates to the pool.
        """
        try:
            self._relay(task_id, event, query)
        except Exception:
            logger.exception(
                "Task %s: unexpected error relaying message %s",
                task_id,
                event.message_id,
            )

    def _relay(self, task_id: str, event: InboundEvent, query: str) -> None:
        user_id = event.sender_id or ANONYMOUS_USER
        logger.info(
            "Task %s: relaying message %s from %s",
            task_id,
            event.message_id,
            event.sender_display_name or user_id,
        )

        try:
            result = self._gateway.complete(query, user_id)
        except CompletionError as e:
            logger.error(
                "Task %s: completion failed for message %s: %s",
                task_id,
                event.message_id,
                e,
            )
            return

        payload = format_interactive(
            result.answer,
            event.sender_id,
            message_id=event.message_id,
            thread_id=event.thread_id,
        )

        try:
            self._delivery.send_interactive(event.conversation_id, payload)
        except DeliveryFailure as e:
            logger.error(
                "Task %s: reply to message %s not delivered: %s",
                task_id,
                event.message_id,
                e,
            )
            return

        logger.info(
            "Task %s: replied to %s in %s",
            task_id,
            event.sender_display_name or user_id,
            event.conversation_id,
        )

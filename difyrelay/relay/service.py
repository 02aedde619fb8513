# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Relay service and command-line entry point.

Wires the event stream, filter, dispatcher, completion gateway and
delivery client together and runs until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from difyrelay import __version__
from difyrelay.completion.dify import DifyCompletionGateway
from difyrelay.config import ConfigError, RelayConfig
from difyrelay.logging import configure_logging
from difyrelay.relay.channel import EventStream, InboundEvent
from difyrelay.relay.dispatcher import DEFAULT_DRAIN_TIMEOUT, AsyncDispatcher
from difyrelay.relay.filter import filter_event
from difyrelay.slack.delivery import SlackDeliveryClient
from difyrelay.slack.listener import SlackEventStream


logger = logging.getLogger(__name__)

_ENV_HELP = """\
environment variables (overridden by non-empty config file values):
  SLACK_BOT_TOKEN        Slack bot token (xoxb-...)
  SLACK_APP_TOKEN        Slack app-level token for Socket Mode (xapp-...)
  SLACK_BOT_NAME         Bot name that also counts as a mention
  SLACK_REPLY_IN_THREAD  Post replies in the message thread (true/false)
  DIFY_API_KEY           Dify chat app API key
  DIFY_BASE_URL          Dify API root (default: https://api.dify.ai)
  DIFY_TIMEOUT           Completion request timeout in seconds

A .env file in ~/.config/difyrelay/ or the working directory is loaded
first.
"""


class RelayService:
    """Relays mentions from a chat event stream to a completion backend.

    Args:
        stream: Inbound event source.
        dispatcher: Runs relay tasks off the stream's thread.
        bot_name: Bot display name that also counts as a mention.
        shutdown_timeout: Default drain deadline for ``shutdown()``.
        closers: Release backend resources once the stream has stopped.
    """

    def __init__(
        self,
        stream: EventStream,
        dispatcher: AsyncDispatcher,
        *,
        bot_name: str = "",
        shutdown_timeout: float = DEFAULT_DRAIN_TIMEOUT,
        closers: Sequence[Callable[[], None]] = (),
    ) -> None:
        self._stream = stream
        self._dispatcher = dispatcher
        self._bot_name = bot_name
        self._shutdown_timeout = shutdown_timeout
        self._closers = tuple(closers)
        # Reentrant: signal handlers call shutdown() on the main thread.
        self._shutdown_lock = threading.RLock()
        self._shutdown_thread: int | None = None
        self._drained: bool | None = None
        self._stopped = threading.Event()

    @classmethod
    def from_config(cls, config: RelayConfig) -> RelayService:
        """Build a service with the Slack and Dify implementations."""
        gateway = DifyCompletionGateway(config.dify)
        dispatcher = AsyncDispatcher(
            gateway,
            SlackDeliveryClient.from_config(config.slack),
            max_workers=config.max_concurrent_tasks,
        )
        return cls(
            SlackEventStream(config.slack),
            dispatcher,
            bot_name=config.slack.bot_name,
            shutdown_timeout=config.shutdown_timeout_seconds,
            closers=(gateway.close,),
        )

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def handle_event(self, event: InboundEvent) -> None:
        """Filter *event* and dispatch a relay task if it is accepted.

        Returns without waiting for the completion or the reply.

        Raises:
            DecodeError: If the event content cannot be decoded.
        """
        decision = filter_event(event, self._bot_name)
        if not decision.accept:
            logger.debug("Ignoring message %s", event.message_id)
            return
        self._dispatcher.dispatch(event, decision.query)

    def start(self) -> None:
        """Subscribe to the event stream.  Returns once connected."""
        self._stream.subscribe(self.handle_event)
        logger.info("Relay service started")

    def shutdown(self, timeout: float | None = None) -> bool:
        """Drain relay tasks, stop the event stream, release backends.

        Only the first call does the work.  A later call from another
        thread blocks until that work is done and returns the same
        result.  A call made by the draining thread itself, such as a
        signal handler firing mid-drain, returns False at once.

        Args:
            timeout: Drain deadline in seconds.  Defaults to the
                configured shutdown timeout.

        Returns:
            True if every task finished before the deadline.
        """
        me = threading.get_ident()
        with self._shutdown_lock:
            owner = self._shutdown_thread
            if owner is None:
                self._shutdown_thread = me
        if owner is not None:
            if owner == me and not self._stopped.is_set():
                return False
            self._stopped.wait()
            return bool(self._drained)

        if timeout is None:
            timeout = self._shutdown_timeout

        logger.info("Shutting down relay service...")
        drained = False
        try:
            drained = self._dispatcher.close(timeout)
            try:
                self._stream.stop()
            except Exception as e:
                logger.warning("Error stopping event stream: %s", e)
            for close in self._closers:
                try:
                    close()
                except Exception as e:
                    logger.warning("Error releasing backend: %s", e)
        finally:
            self._drained = drained
            self._stopped.set()

        logger.info("Relay service stopped")
        return drained

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the service has shut down.

        Returns:
            True if the service stopped, False on timeout.
        """
        return self._stopped.wait(timeout)


def _exit_abandoning_tasks(code: int) -> None:
    """End the process now, leaving unfinished relay tasks behind.

    A normal interpreter exit joins the worker threads, which would hold
    the process until every abandoned completion call returns.
    """
    logger.warning("Exiting with relay tasks still running")
    for handler in logging.getLogger().handlers:
        handler.flush()
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Exit code (0=success, 1=config error, 2=startup, 3=runtime error).
    """
    parser = argparse.ArgumentParser(
        prog="difyrelay",
        description="Answer Slack mentions with replies from a Dify app.",
        epilog=_ENV_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to difyrelay.yaml config file"
            " (default: ~/.config/difyrelay/difyrelay.yaml)"
        ),
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.debug else logging.INFO)

    logger.info("difyrelay %s starting...", __version__)

    try:
        config = RelayConfig.load(config_path=args.config)
    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        return 1

    if not args.debug:
        logging.getLogger().setLevel(config.log_level)
    logger.info("Dify base URL: %s", config.dify.base_url)

    try:
        service = RelayService.from_config(config)
        service.start()
    except Exception as e:
        logger.exception("Failed to start relay service: %s", e)
        return 2

    def shutdown_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals."""
        logger.info("Received signal %d, initiating shutdown...", signum)
        service.shutdown()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    exit_code = 0
    try:
        while not service.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.exception("Fatal runtime error: %s", e)
        exit_code = 3

    if not service.shutdown():
        _exit_abandoning_tasks(exit_code)
    return exit_code

# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack channel implementation for the relay.

Provides Slack-specific protocol handling:
- SlackEventStream: Socket Mode event stream
- SlackDeliveryClient: Block Kit message delivery
- SlackChannelConfig: Configuration dataclass
"""

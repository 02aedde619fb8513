# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack bot that relays mentions to a Dify chat app and posts the answers."""

__version__ = "1.0.0"

# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Platform-independent relay core.

- channel: inbound event and delivery protocols
- filter: mention detection
- formatter: interactive reply payloads
- dispatcher: concurrent relay tasks with drain on shutdown
- service: composition root and CLI
"""

# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Run the relay with ``python -m difyrelay``."""

import sys

from difyrelay.relay.service import main


if __name__ == "__main__":
    sys.exit(main())

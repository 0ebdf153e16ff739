#!/usr/bin/env python3
"""Convenience entry point for the ring-detect CLI.

Running ``python main.py detect core.png --start ... --end ...`` is the same
as the installed ``ring-detect`` command.
"""

from ring_detect.cli.main import cli_main


if __name__ == "__main__":
    cli_main()

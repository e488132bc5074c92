#!/usr/bin/env python3
"""Run SCRIPT with the opskit cleanup scope set up: run_script.py SCRIPT [ARGS...]"""

import sys

from opskit.cli import main

if __name__ == "__main__":
    raise SystemExit(main(["run", *sys.argv[1:]]))

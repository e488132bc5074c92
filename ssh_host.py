#!/usr/bin/env python3
"""ssh into host N of a stack: ssh_host.py [--stack NAME] N [-- CMD...]"""

from opskit.tools.ssh_host import main

if __name__ == "__main__":
    raise SystemExit(main())

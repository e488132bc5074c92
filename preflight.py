#!/usr/bin/env python3
from opskit.tools.preflight import main

if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Simulation launcher script.

Runs the sniper with the paper profile: every token goes through the full
validation pipeline, but buys and sells are priced from venue quotes and no
transaction is ever broadcast.
"""

import asyncio
import sys

from sniper.runner.pipeline import main


if __name__ == "__main__":
    sys.argv = ["sniper", "--config", "configs/paper.yaml", "--profile", "paper"]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nSimulation stopped by user.")
        sys.exit(0)

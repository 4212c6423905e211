#!/usr/bin/env python3
"""
Entry point for running the agent as a module.

Usage:
    python -m x32agent [--x32IP IP] [--x32Port PORT] [--config PATH] ...
"""

import sys

from x32agent.cli import main

sys.exit(main())

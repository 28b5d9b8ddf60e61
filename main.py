#!/usr/bin/env python3
"""
GoldWatch - Gold Price Broadcaster
==================================

Main entry point for running GoldWatch.

Usage:
    python main.py
    python main.py --log-level DEBUG

Debug logging can also be enabled with ``system.log_level: "DEBUG"`` in
config/config.yaml or ``export GOLDWATCH_LOG_LEVEL=DEBUG``.
"""

from goldwatch.orchestrator import cli


if __name__ == "__main__":
    cli()

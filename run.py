#!/usr/bin/env python3
"""Stream a CLI session as chat events.

Usage:
    python run.py [--config config.yaml] [--debug] [--trace] [--verbose] [command ...]
    python run.py --replay capture.raw
"""
from src.main import cli

if __name__ == "__main__":
    cli()

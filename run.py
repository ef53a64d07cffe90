#!/usr/bin/env python3
"""Run a backup from a source checkout"""
from volume_backup.cli import cli_main

if __name__ == '__main__':
    cli_main()

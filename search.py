#!/usr/bin/env python3
"""
filedex quick search CLI.
Examples:
  python search.py invoice --type pdf
  python search.py lease --folder /Volumes/TeamShare/Legal/ --after 2024-01-01
  python search.py --scope legal --min-size 1M --limit 50
"""
import sys

from filedex.cli import main

if __name__ == "__main__":
    sys.exit(main(["search", *sys.argv[1:]]))

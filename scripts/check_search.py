#!/usr/bin/env python3
"""Launcher for the search health check.

Convenience wrapper so the check can be dropped into a Nagios plugin
directory and called as:
    check_search.py -host solr1 -port 8983 -core logs -sortkey timestamp
instead of remembering the python -m path. Adds project root to sys.path.
"""

import sys
from pathlib import Path

# Ensure project root is on sys.path so standard package imports work
script_dir = Path(__file__).resolve().parent
project_root = script_dir.parent
sys.path.insert(0, str(project_root))

from probe.check import main  # noqa: E402

if __name__ == '__main__':
    sys.exit(main())

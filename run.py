#!/usr/bin/env python
"""
Launcher script for the menu costing command line.

This script ensures the src/ directory is on the Python path before
running the CLI from a source checkout.
"""

import sys
from pathlib import Path

# Add src/ to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from menu_costing.main import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())

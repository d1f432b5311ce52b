#!/usr/bin/env python3
"""
Generate icon / embed / splash images for the mini app and update farcaster.json.
Run from the project root: python -m scripts.generate_assets
or: PYTHONPATH=. python scripts/generate_assets.py
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from miniapp_assets.main import main


if __name__ == "__main__":
    sys.exit(main())

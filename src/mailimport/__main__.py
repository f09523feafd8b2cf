"""
Module entry point.

Usage:
    python -m mailimport import --month 2 --year 2024
    python -m mailimport resume --month 2 --year 2024
    python -m mailimport imported
"""

from __future__ import annotations
from mailimport.cli import main

if __name__ == "__main__":
    main()

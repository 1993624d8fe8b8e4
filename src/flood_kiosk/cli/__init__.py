"""CLI package for the flood kiosk engine.

Execute via:
  python -m flood_kiosk.cli <command> [options]

Or, once installed, through the `flood-kiosk` console script.

Commands implemented in `main.py` using the standard library `argparse`.
"""

from .main import main  # re-export for python -m flood_kiosk.cli

__all__ = ["main"]

"""Pytest configuration ensuring the `src` directory is on sys.path.

Allows `import flood_kiosk...` without installing the package.
"""
import sys
import os

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
SRC = os.path.join(ROOT, 'src')
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from flood_kiosk.scheduling.scheduler import ManualScheduler  # noqa: E402
from flood_kiosk.transport.channel import LocalBroadcastChannel  # noqa: E402


def still_rng():
    """Jitter-free random source: (0.5 - 0.5) * ... == 0."""
    return 0.5


@pytest.fixture(autouse=True)
def _isolated_channels():
    # Broadcast peers are process-wide; never let one test hear another.
    LocalBroadcastChannel._peers.clear()
    yield
    LocalBroadcastChannel._peers.clear()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def rng():
    return still_rng

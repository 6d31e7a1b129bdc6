"""Client for the Ore plugin catalog: search, resolve, install and check plugins."""

from __future__ import annotations

__version__ = "0.3.0"

"""tripsync: client-side realtime sync for shared travel plans."""

from __future__ import annotations

__version__ = "0.1.0"

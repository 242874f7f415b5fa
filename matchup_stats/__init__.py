"""
Matchup statistics collector.

Collects ranked solo queue matches from the Riot API, aggregates lane
matchup statistics per patch and serves them from a persistent cache.
"""

from .core import get_global_settings

__version__ = "0.1.0"

__all__ = [
    "get_global_settings",
]

"""Song A Day - year-long listening history curated into a playlist

Polls Spotify listening history, keeps per-track daily play counts for one
calendar year and republishes a "song a day" playlist every cycle.
"""

__version__ = "1.0.0"
__author__ = "Song A Day Contributors"

# Lazy imports to avoid double execution when running with 'python -m songaday.main'
__all__ = ["main", "SongADayEngine"]

"""Configuration module: exports Settings and load_settings."""

from leaderboard.config.loader import load_settings
from leaderboard.config.settings import Settings

__all__ = ["Settings", "load_settings"]

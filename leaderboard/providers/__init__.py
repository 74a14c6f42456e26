"""Concrete adapters for the interfaces in ``leaderboard.interfaces``."""

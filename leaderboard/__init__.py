"""Book leaderboard update cycle: clean, acquire, filter and publish."""

__version__ = "0.1.0"

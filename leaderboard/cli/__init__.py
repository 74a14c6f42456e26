"""Command-line tools for the update cycle.

- ``leaderboard-cycle run`` -- run one cycle (also ``python -m leaderboard.cli run``)
- ``leaderboard-cycle status`` -- show the last persisted cycle status
- ``leaderboard-cycle init`` -- bootstrap the data directory
"""

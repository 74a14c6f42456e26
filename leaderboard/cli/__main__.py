"""Allow ``python -m leaderboard.cli`` execution."""

from leaderboard.cli.cycle import main

main()

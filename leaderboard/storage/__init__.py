"""Durable JSON persistence for the data directory."""

from leaderboard.storage.documents import DataDirectory, DocumentName, DocumentRepository
from leaderboard.storage.json_store import JsonStore

__all__ = ["DataDirectory", "DocumentName", "DocumentRepository", "JsonStore"]

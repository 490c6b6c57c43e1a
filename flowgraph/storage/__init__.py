"""
Repository abstraction for flowgraph.

Supports multiple backends:
- JsonFileRepository: Local JSON files (default)
- SupabaseRepository: Cloud PostgreSQL
"""

from flowgraph.storage.protocol import Repository
from flowgraph.storage.json_backend import JsonFileRepository
from flowgraph.storage.factory import create_repository

__all__ = [
    'Repository',
    'JsonFileRepository',
    'create_repository',
]

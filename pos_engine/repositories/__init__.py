"""
Local persistence.
"""

from pos_engine.repositories.local_store import LocalStateRepository

__all__ = ["LocalStateRepository"]

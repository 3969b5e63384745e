"""
Record stores for the reconciliation engine
"""
from .base import RecordStore, StoreError
from .memory import InMemoryStore

__all__ = [
    'RecordStore',
    'StoreError',
    'InMemoryStore',
]

"""
CRUD

Batched insert, update, delete and fetch-by-key for mapped records.
"""

from rowmapper.crud.executor import CrudExecutor, WriteResult

__all__ = ["CrudExecutor", "WriteResult"]

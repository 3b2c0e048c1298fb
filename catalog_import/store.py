"""
Catalog Store Module
Data-store contract used by the import pipeline, plus an in-memory backend.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from loguru import logger

from .exceptions import StoreError
from .models import VARIATIONS, new_id


class CatalogStore(ABC):
    """
    Row-level access to the catalog tables.

    Rows are plain dictionaries; every row carries an ``id``. Filters are
    exact, case-sensitive equality matches on column values.
    """

    @abstractmethod
    async def find_one(self, table: str, **filters: Any) -> Optional[Dict[str, Any]]:
        """Return the first row matching every filter, or None."""

    @abstractmethod
    async def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        """Return all rows matching every filter, in insertion order."""

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored."""

    @abstractmethod
    async def update(self, table: str, row_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``changes`` to the row with ``row_id`` and return the updated row."""

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        """Delete the row with ``row_id``."""

    @abstractmethod
    async def ensure_lookup(
        self,
        table: str,
        name: str,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Insert a lookup row by name unless one already exists.

        The check and the insert happen as one step, so concurrent callers
        asking for the same name all receive the same row.

        Args:
            table: Lookup table (categories, brands, sizes, frame types)
            name: Unique name of the lookup value
            defaults: Extra columns for a newly created row

        Returns:
            Tuple of (row, created)
        """

    async def sku_exists(self, sku: str) -> bool:
        """Check whether any variation already uses ``sku``."""
        return await self.find_one(VARIATIONS, sku=sku) is not None

    async def close(self) -> None:
        """Release any underlying resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class MemoryCatalogStore(CatalogStore):
    """
    Catalog store kept in process memory.

    Used for dry runs and tests. Every operation yields to the event loop
    once so concurrent records interleave the way they do against a remote
    backend.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        """
        Initialize the store.

        Args:
            tables: Optional seed rows per table
        """
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lookup_lock = asyncio.Lock()
        for table, rows in (tables or {}).items():
            for row in rows:
                row = dict(row)
                row.setdefault('id', new_id())
                self._table(table)[row['id']] = row

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self.tables.setdefault(table, {})

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Return a copy of every row in ``table`` (synchronous helper for reports and tests)."""
        return [copy.deepcopy(row) for row in self._table(table).values()]

    def _matching(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            row for row in self._table(table).values()
            if all(row.get(column) == value for column, value in filters.items())
        ]

    async def find_one(self, table: str, **filters: Any) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        matches = self._matching(table, filters)
        return copy.deepcopy(matches[0]) if matches else None

    async def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        return [copy.deepcopy(row) for row in self._matching(table, filters)]

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        await asyncio.sleep(0)
        row = copy.deepcopy(row)
        row.setdefault('id', new_id())
        rows = self._table(table)
        if row['id'] in rows:
            raise StoreError(f"Duplicate id {row['id']} in {table}", status_code=409)
        if table == VARIATIONS and self._matching(VARIATIONS, {'sku': row.get('sku')}):
            raise StoreError(f"Duplicate SKU {row.get('sku')}", status_code=409)
        rows[row['id']] = row
        logger.debug(f"Inserted {table} row {row['id']}")
        return copy.deepcopy(row)

    async def update(self, table: str, row_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        await asyncio.sleep(0)
        rows = self._table(table)
        if row_id not in rows:
            raise StoreError(f"No {table} row with id {row_id}", status_code=404)
        rows[row_id].update(copy.deepcopy(changes))
        logger.debug(f"Updated {table} row {row_id}")
        return copy.deepcopy(rows[row_id])

    async def delete(self, table: str, row_id: str) -> None:
        await asyncio.sleep(0)
        rows = self._table(table)
        if row_id not in rows:
            raise StoreError(f"No {table} row with id {row_id}", status_code=404)
        del rows[row_id]
        logger.debug(f"Deleted {table} row {row_id}")

    async def ensure_lookup(
        self,
        table: str,
        name: str,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        async with self._lookup_lock:
            existing = self._matching(table, {'name': name})
            if existing:
                return copy.deepcopy(existing[0]), False
            row = dict(defaults or {}, name=name)
            return await self.insert(table, row), True

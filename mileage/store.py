"""Record store contract and an in-memory implementation."""

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from .decoding import MAINTENANCE_LOGS, TRIPS, VEHICLES
from .errors import UNIQUE_VIOLATION, NotFoundError, StoreError
from .logging_config import get_logger

logger = get_logger(__name__)

Row = Dict[str, Any]

# Child collections owned by a vehicle, keyed by their foreign key column.
RELATIONS: Dict[str, Dict[str, str]] = {
    VEHICLES: {TRIPS: "vehicle_id", MAINTENANCE_LOGS: "vehicle_id"},
}

UNIQUE_CONSTRAINTS: Dict[str, Tuple[str, ...]] = {
    VEHICLES: ("user_id", "plate_number"),
}


class RecordStore(ABC):
    """
    Single-entity record store.

    No multi-entity transactions. Deleting a vehicle cascades to the rows
    that reference it. Failures raise NotFoundError or StoreError; a
    uniqueness violation is a StoreError with code UNIQUE_VIOLATION.
    """

    @abstractmethod
    async def insert(self, collection: str, record: Row) -> str:
        """Insert a row and return its new id."""

    @abstractmethod
    async def update(self, collection: str, id: str, patch: Row) -> None:
        """Apply a partial update to one row."""

    @abstractmethod
    async def delete(self, collection: str, id: str) -> None:
        """Delete one row and the rows it owns."""

    @abstractmethod
    async def query_by_owner(
        self, collection: str, owner_id: str, with_relations: bool = False
    ) -> List[Row]:
        """All rows belonging to an owner, with nested children if requested."""


class MemoryStore(RecordStore):
    """RecordStore that keeps rows in dictionaries, in insertion order."""

    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        self._tables: Dict[str, Dict[str, Row]] = {
            VEHICLES: {},
            TRIPS: {},
            MAINTENANCE_LOGS: {},
        }
        if tables:
            self._load_tables(tables)

    def _load_tables(self, tables: Dict[str, List[Row]]) -> None:
        for collection in self._tables:
            table = {}
            for r in tables.get(collection) or []:
                row = dict(r)
                for column in ("id", "user_id", "vehicle_id"):
                    if row.get(column) is not None:
                        row[column] = str(row[column])
                table[row["id"]] = row
            self._tables[collection] = table

    def _dump_tables(self) -> Dict[str, List[Row]]:
        return {name: list(rows.values()) for name, rows in self._tables.items()}

    def _table(self, collection: str) -> Dict[str, Row]:
        try:
            return self._tables[collection]
        except KeyError:
            raise StoreError(f"Unknown collection '{collection}'") from None

    def _check_unique(self, collection: str, row: Row, own_id: Optional[str]) -> None:
        columns = UNIQUE_CONSTRAINTS.get(collection)
        if not columns:
            return
        key = tuple(row.get(c) for c in columns)
        for other_id, other in self._tables[collection].items():
            if other_id == own_id:
                continue
            if tuple(other.get(c) for c in columns) == key:
                raise StoreError(
                    f"duplicate key value violates unique constraint on "
                    f"{collection}({', '.join(columns)})",
                    code=UNIQUE_VIOLATION,
                )

    def _insert(self, collection: str, record: Row) -> str:
        table = self._table(collection)
        row = dict(record)
        self._check_unique(collection, row, None)
        row_id = str(row.get("id") or uuid.uuid4())
        if row_id in table:
            raise StoreError(
                f"duplicate key value violates primary key on {collection}",
                code=UNIQUE_VIOLATION,
            )
        row["id"] = row_id
        table[row_id] = row
        return row_id

    def _update(self, collection: str, id: str, patch: Row) -> None:
        table = self._table(collection)
        if id not in table:
            raise NotFoundError(f"No {collection} row with id '{id}'")
        updated = {**table[id], **patch, "id": id}
        self._check_unique(collection, updated, id)
        table[id] = updated

    def _delete(self, collection: str, id: str) -> None:
        table = self._table(collection)
        if id not in table:
            raise NotFoundError(f"No {collection} row with id '{id}'")
        del table[id]
        for child, column in RELATIONS.get(collection, {}).items():
            rows = self._tables[child]
            for child_id in [k for k, r in rows.items() if r.get(column) == id]:
                del rows[child_id]

    def _owned_vehicle_ids(self, owner_id: str) -> List[str]:
        return [
            vid
            for vid, row in self._tables[VEHICLES].items()
            if row.get("user_id") == owner_id
        ]

    def _query_by_owner(
        self, collection: str, owner_id: str, with_relations: bool
    ) -> List[Row]:
        table = self._table(collection)
        if collection == VEHICLES:
            rows = [r for r in table.values() if r.get("user_id") == owner_id]
        else:
            vehicle_ids = set(self._owned_vehicle_ids(owner_id))
            rows = [r for r in table.values() if r.get("vehicle_id") in vehicle_ids]

        result = copy.deepcopy(rows)
        if with_relations:
            for row in result:
                for child, column in RELATIONS.get(collection, {}).items():
                    row[child] = [
                        copy.deepcopy(c)
                        for c in self._tables[child].values()
                        if c.get(column) == row["id"]
                    ]
        return result

    async def insert(self, collection: str, record: Row) -> str:
        row_id = self._insert(collection, record)
        logger.debug(f"insert {collection}/{row_id}")
        return row_id

    async def update(self, collection: str, id: str, patch: Row) -> None:
        self._update(collection, id, patch)
        logger.debug(f"update {collection}/{id}: {sorted(patch)}")

    async def delete(self, collection: str, id: str) -> None:
        self._delete(collection, id)
        logger.debug(f"delete {collection}/{id}")

    async def query_by_owner(
        self, collection: str, owner_id: str, with_relations: bool = False
    ) -> List[Row]:
        return self._query_by_owner(collection, owner_id, with_relations)

"""Record store backed by a single YAML document."""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import StoreError
from .logging_config import get_logger
from .schema import load_schema, stringify_dates, validate_document
from .store import MemoryStore, Row

logger = get_logger(__name__)


class YamlStore(MemoryStore):
    """
    MemoryStore persisted to a YAML file.

    Every operation re-reads the file, applies the change and writes the
    whole document back, so edits made to the file between calls are seen.
    The document holds three lists: vehicles, trips and maintenance_logs.
    """

    def __init__(self, filename: Union[str, Path], schema: Optional[dict] = None):
        super().__init__()
        self.filename = Path(filename)
        self._schema = schema if schema is not None else load_schema()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _io_lock(self) -> asyncio.Lock:
        # A lock belongs to one event loop; each asyncio.run gets its own.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _read(self) -> None:
        if not self.filename.exists():
            self._load_tables({})
            return
        try:
            with open(self.filename, "r") as fp:
                data = stringify_dates(yaml.load(fp, Loader=yaml.SafeLoader) or {})
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"Cannot read {self.filename}: {e}") from e

        errors = validate_document(data, self._schema)
        if errors:
            raise StoreError(f"Invalid store file {self.filename}: {'; '.join(errors)}")
        self._load_tables(data)

    def _write(self) -> None:
        data: Dict[str, List[Row]] = self._dump_tables()
        try:
            with open(self.filename, "w") as fp:
                yaml.dump(
                    data,
                    fp,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                    width=120,
                )
        except OSError as e:
            raise StoreError(f"Cannot write {self.filename}: {e}") from e

    async def insert(self, collection: str, record: Row) -> str:
        async with self._io_lock():
            self._read()
            row_id = self._insert(collection, record)
            self._write()
        logger.debug(f"insert {collection}/{row_id} -> {self.filename}")
        return row_id

    async def update(self, collection: str, id: str, patch: Row) -> None:
        async with self._io_lock():
            self._read()
            self._update(collection, id, patch)
            self._write()
        logger.debug(f"update {collection}/{id} -> {self.filename}")

    async def delete(self, collection: str, id: str) -> None:
        async with self._io_lock():
            self._read()
            self._delete(collection, id)
            self._write()
        logger.debug(f"delete {collection}/{id} -> {self.filename}")

    async def query_by_owner(
        self, collection: str, owner_id: str, with_relations: bool = False
    ) -> List[Dict[str, Any]]:
        async with self._io_lock():
            self._read()
            return self._query_by_owner(collection, owner_id, with_relations)

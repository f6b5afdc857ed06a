from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.data.tables import TableClient, UpdateMode
from sqlalchemy.exc import SQLAlchemyError

from models import TableEntity

logger = logging.getLogger(__name__)

FILE_NAMES = {
    ("duties", "current"): "duties.json",
    ("config", "children"): "children.json",
    ("config", "crossings"): "crossings.json",
    ("config", "schedule"): "schedule.json",
    ("config", "notifications"): "notifications.json",
    ("audit", "log"): "audit_log.json",
}


class StoreError(RuntimeError):
    """Raised when a backing store cannot be read or written."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EntityStore:
    """Whole-object key/value store addressed by (partition, row)."""

    name = "abstract"

    @property
    def available(self) -> bool:
        return True

    def read(self, partition: str, row: str) -> Optional[Any]:
        raise NotImplementedError

    def write(self, partition: str, row: str, payload: Any) -> str:
        raise NotImplementedError


class AzureTableStore(EntityStore):
    name = "azure"

    def __init__(
        self,
        connection_string: str,
        table_name: str = "trafikkvakt",
        client: Optional[TableClient] = None,
    ) -> None:
        self.table_name = table_name
        self._enabled = False
        if client is None:
            try:
                client = TableClient.from_connection_string(connection_string, table_name=table_name)
            except ValueError:
                logger.exception("Invalid Azure Storage connection string")
                return
        self._client = client
        self._ensure_table()

    def _ensure_table(self) -> None:
        try:
            self._client.create_table()
            logger.info("Azure table '%s' created", self.table_name)
        except ResourceExistsError:
            logger.info("Azure table '%s' already exists", self.table_name)
        except AzureError:
            logger.exception("Failed to initialise Azure table '%s'", self.table_name)
            return
        self._enabled = True

    @property
    def available(self) -> bool:
        return self._enabled

    def read(self, partition: str, row: str) -> Optional[Any]:
        if not self._enabled:
            raise StoreError("Azure Table Storage is not enabled")
        try:
            entity = self._client.get_entity(partition_key=partition, row_key=row)
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise StoreError(f"Azure read of {partition}/{row} failed: {exc}") from exc
        try:
            return json.loads(entity["data"])
        except (KeyError, TypeError, json.JSONDecodeError) as exc:
            raise StoreError(f"Azure entity {partition}/{row} holds invalid data") from exc

    def write(self, partition: str, row: str, payload: Any) -> str:
        if not self._enabled:
            raise StoreError("Azure Table Storage is not enabled")
        stamp = _utc_now().isoformat()
        entity = {
            "PartitionKey": partition,
            "RowKey": row,
            "data": json.dumps(payload),
            "lastUpdated": stamp,
        }
        try:
            self._client.upsert_entity(entity=entity, mode=UpdateMode.REPLACE)
        except AzureError as exc:
            raise StoreError(f"Azure write of {partition}/{row} failed: {exc}") from exc
        return stamp


class SqlTableStore(EntityStore):
    name = "sql"

    def __init__(self, session_factory: Callable) -> None:
        self._session_factory = session_factory

    def read(self, partition: str, row: str) -> Optional[Any]:
        try:
            with self._session_factory() as session:
                record = session.get(TableEntity, (partition, row))
                data = record.data if record else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Database read of {partition}/{row} failed: {exc}") from exc
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Database entity {partition}/{row} holds invalid data") from exc

    def write(self, partition: str, row: str, payload: Any) -> str:
        now = _utc_now()
        try:
            with self._session_factory() as session:
                record = session.get(TableEntity, (partition, row))
                if record is None:
                    record = TableEntity(partition_key=partition, row_key=row)
                    session.add(record)
                record.data = json.dumps(payload)
                record.last_updated = now
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Database write of {partition}/{row} failed: {exc}") from exc
        return now.isoformat()


class JsonFileStore(EntityStore):
    name = "file"

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def _path(self, partition: str, row: str) -> str:
        filename = FILE_NAMES.get((partition, row), f"{partition}-{row}.json")
        return os.path.join(self.directory, filename)

    def read(self, partition: str, row: str) -> Optional[Any]:
        path = self._path(partition, row)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Unable to read {path}: {exc}") from exc

    def write(self, partition: str, row: str, payload: Any) -> str:
        path = self._path(partition, row)
        if not os.path.exists(self.directory):
            os.makedirs(self.directory, exist_ok=True)
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                delete=False,
                dir=self.directory,
            ) as tmp_handle:
                tmp_path = tmp_handle.name
                json.dump(payload, tmp_handle, indent=2, ensure_ascii=False)
                tmp_handle.flush()
                os.fsync(tmp_handle.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StoreError(f"Unable to write {path}: {exc}") from exc
        return _utc_now().isoformat()

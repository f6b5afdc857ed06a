from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from table_store import (
    AzureTableStore,
    EntityStore,
    JsonFileStore,
    SqlTableStore,
    StoreError,
)

DUTIES_KEY = ("duties", "current")
CHILDREN_KEY = ("config", "children")
CROSSINGS_KEY = ("config", "crossings")
SCHEDULE_KEY = ("config", "schedule")
NOTIFICATIONS_KEY = ("config", "notifications")
AUDIT_KEY = ("audit", "log")

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when an entity cannot be served by any configured store."""


def schedule_for_date(target: date) -> dict[str, Any]:
    start = target - timedelta(days=target.weekday())
    end = start + timedelta(days=6)
    iso_year, iso_week, _ = target.isocalendar()
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "weekNumber": iso_week,
        "year": iso_year,
    }


def normalize_children(payload: Any) -> dict[str, list[str]]:
    if isinstance(payload, dict):
        payload = payload.get("children")
    if not isinstance(payload, list):
        raise ValueError("children must be a list of names")
    names: list[str] = []
    for item in payload:
        name = str(item or "").strip()
        if name and name not in names:
            names.append(name)
    return {"children": names}


def normalize_crossings(payload: Any) -> dict[str, list[dict[str, str]]]:
    if isinstance(payload, dict):
        payload = payload.get("crossings")
    if not isinstance(payload, list):
        raise ValueError("crossings must be a list")
    crossings: list[dict[str, str]] = []
    seen: set[str] = set()
    for item in payload:
        if isinstance(item, dict):
            name = str(item.get("name") or "").strip()
            link = str(item.get("googleMapsLink") or "").strip()
        else:
            name = str(item or "").strip()
            link = ""
        if not name or name in seen:
            continue
        seen.add(name)
        crossings.append({"name": name, "googleMapsLink": link})
    return {"crossings": crossings}


def normalize_duties(payload: Any) -> dict[str, dict[str, dict[str, str]]]:
    if not isinstance(payload, dict):
        raise ValueError("expected JSON object with a 'duties' mapping")
    table = payload.get("duties", payload)
    if not isinstance(table, dict):
        raise ValueError("duties must map crossing -> day -> child")
    duties: dict[str, dict[str, str]] = {}
    for crossing, days in table.items():
        if not isinstance(days, dict):
            raise ValueError(f"duties for {crossing} must map day -> child")
        cells = {str(day): str(child).strip() for day, child in days.items() if child and str(child).strip()}
        duties[str(crossing)] = cells
    return {"duties": duties}


def normalize_schedule(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("schedule must be a JSON object")
    try:
        start = date.fromisoformat(str(payload["startDate"]))
        end = date.fromisoformat(str(payload["endDate"]))
        week_number = int(payload["weekNumber"])
        year = int(payload["year"])
    except KeyError as exc:
        raise ValueError(f"missing schedule field: {exc.args[0]}") from exc
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid schedule: {exc}") from exc
    if end < start:
        raise ValueError("endDate must not be before startDate")
    if not 1 <= week_number <= 53:
        raise ValueError("weekNumber must be between 1 and 53")
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "weekNumber": week_number,
        "year": year,
    }


class DataService:
    """Reads and writes the application entities through a primary store.

    When the primary store fails and a fallback store is configured the
    failure is logged and the fallback serves the request. Without a fallback
    the failure is raised as ``StorageError``.
    """

    def __init__(self, primary: EntityStore, fallback: Optional[EntityStore] = None) -> None:
        self.primary = primary
        self.fallback = fallback

    def describe(self) -> dict[str, Any]:
        return {
            "primary": self.primary.name,
            "primaryAvailable": self.primary.available,
            "fallback": self.fallback.name if self.fallback else None,
        }

    def is_primary_available(self) -> bool:
        return self.primary.available

    def _read(self, key: tuple[str, str]) -> Optional[Any]:
        partition, row = key
        try:
            return self.primary.read(partition, row)
        except StoreError as exc:
            if not self.fallback:
                logger.error("Reading %s/%s failed: %s", partition, row, exc)
                raise StorageError(str(exc)) from exc
            logger.warning("Reading %s/%s from %s failed, using %s: %s", partition, row, self.primary.name, self.fallback.name, exc)
        try:
            return self.fallback.read(partition, row)
        except StoreError as exc:
            logger.error("Fallback read of %s/%s failed: %s", partition, row, exc)
            raise StorageError(str(exc)) from exc

    def _write(self, key: tuple[str, str], payload: Any) -> str:
        partition, row = key
        try:
            return self.primary.write(partition, row, payload)
        except StoreError as exc:
            if not self.fallback:
                logger.error("Writing %s/%s failed: %s", partition, row, exc)
                raise StorageError(str(exc)) from exc
            logger.warning("Writing %s/%s to %s failed, using %s: %s", partition, row, self.primary.name, self.fallback.name, exc)
        try:
            return self.fallback.write(partition, row, payload)
        except StoreError as exc:
            logger.error("Fallback write of %s/%s failed: %s", partition, row, exc)
            raise StorageError(str(exc)) from exc

    def get_duties(self) -> dict[str, Any]:
        data = self._read(DUTIES_KEY)
        if not isinstance(data, dict) or not isinstance(data.get("duties"), dict):
            return {"duties": {}}
        return data

    def store_duties(self, duties: dict[str, Any]) -> str:
        return self._write(DUTIES_KEY, duties)

    def get_children(self) -> dict[str, Any]:
        data = self._read(CHILDREN_KEY)
        if not isinstance(data, dict) or not isinstance(data.get("children"), list):
            return {"children": []}
        return data

    def store_children(self, children: dict[str, Any]) -> str:
        return self._write(CHILDREN_KEY, children)

    def get_crossings(self) -> dict[str, Any]:
        data = self._read(CROSSINGS_KEY)
        if not isinstance(data, dict) or not isinstance(data.get("crossings"), list):
            return {"crossings": []}
        return data

    def store_crossings(self, crossings: dict[str, Any]) -> str:
        return self._write(CROSSINGS_KEY, crossings)

    def get_schedule(self, today: Optional[date] = None) -> dict[str, Any]:
        data = self._read(SCHEDULE_KEY)
        if not isinstance(data, dict) or not data:
            return schedule_for_date(today or date.today())
        return data

    def store_schedule(self, schedule: dict[str, Any]) -> str:
        return self._write(SCHEDULE_KEY, schedule)

    def get_audit_log(self) -> dict[str, Any]:
        data = self._read(AUDIT_KEY)
        if not isinstance(data, dict) or not isinstance(data.get("auditLog"), list):
            return {"auditLog": []}
        return data

    def store_audit_log(self, audit_log: dict[str, Any]) -> str:
        return self._write(AUDIT_KEY, audit_log)

    def get_notification_settings(self) -> Optional[dict[str, Any]]:
        data = self._read(NOTIFICATIONS_KEY)
        return data if isinstance(data, dict) else None

    def store_notification_settings(self, settings: dict[str, Any]) -> str:
        return self._write(NOTIFICATIONS_KEY, settings)


def build_data_service(config: dict[str, Any]) -> DataService:
    backend = (config.get("STORAGE_BACKEND") or "").strip().lower()
    connection_string = config.get("AZURE_STORAGE_CONNECTION_STRING")
    if not backend:
        backend = "azure" if connection_string else "sql"
    file_store = JsonFileStore(config["DATA_DIR"])
    if backend == "file":
        return DataService(file_store)
    if backend == "azure":
        if not connection_string:
            raise ValueError("STORAGE_BACKEND=azure requires AZURE_STORAGE_CONNECTION_STRING")
        primary: EntityStore = AzureTableStore(connection_string, config.get("AZURE_TABLE_NAME") or "trafikkvakt")
        if not primary.available:
            logger.error("Azure Table Storage is not available, check the connection string and table name")
    elif backend == "sql":
        from db import init_db, make_session_factory

        session_factory = make_session_factory(config.get("DATABASE_URL"))
        init_db(session_factory)
        primary = SqlTableStore(session_factory)
    else:
        raise ValueError(f"unknown STORAGE_BACKEND {backend!r}")
    fallback = file_store if config.get("STORAGE_FALLBACK", True) else None
    logger.info("Storage backend %s (fallback: %s)", primary.name, fallback.name if fallback else "none")
    return DataService(primary, fallback)

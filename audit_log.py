from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from data_service import DataService

SWAP_TYPES = {"swap", "move"}
ENTRY_FIELDS = ("fromChild", "toChild", "fromCrossing", "fromDay", "toCrossing", "toDay")

logger = logging.getLogger(__name__)


def build_entry(payload: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("expected JSON payload")
    entry = {field: str(payload.get(field) or "").strip() for field in ENTRY_FIELDS}
    missing = [field for field in ("fromChild", "fromCrossing", "fromDay", "toCrossing", "toDay") if not entry[field]]
    if missing:
        raise ValueError(f"missing fields: {', '.join(missing)}")
    swap_type = str(payload.get("swapType") or "").strip().lower()
    if not swap_type:
        swap_type = "swap" if entry["toChild"] else "move"
    if swap_type not in SWAP_TYPES:
        raise ValueError("swapType must be 'swap' or 'move'")
    if swap_type == "swap" and not entry["toChild"]:
        raise ValueError("toChild is required for a swap")
    if swap_type == "move":
        entry["toChild"] = ""
    entry["swapType"] = swap_type
    entry["id"] = uuid.uuid4().hex
    entry["timestamp"] = datetime.now(timezone.utc).isoformat()
    return entry


class AuditLogManager:
    def __init__(self, data_service: DataService) -> None:
        self.data_service = data_service

    def list_entries(self) -> list[dict[str, Any]]:
        return list(self.data_service.get_audit_log()["auditLog"])

    def append(self, payload: dict[str, Any]) -> dict[str, Any]:
        entry = build_entry(payload)
        entries = self.list_entries()
        entries.append(entry)
        self.data_service.store_audit_log({"auditLog": entries})
        logger.info(
            "Audit %s: %s %s/%s -> %s/%s",
            entry["swapType"],
            entry["fromChild"],
            entry["fromCrossing"],
            entry["fromDay"],
            entry["toCrossing"],
            entry["toDay"],
        )
        return entry

    def clear(self) -> None:
        self.data_service.store_audit_log({"auditLog": []})
        logger.info("Audit log cleared")

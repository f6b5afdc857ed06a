from __future__ import annotations

import copy
import logging
import random
from collections import Counter
from typing import Any, Iterable, Optional, Sequence

from audit_log import AuditLogManager
from change_feed import ChangeFeed
from data_service import DataService, StorageError, normalize_duties

DAYS = ("Mandag", "Tirsdag", "Onsdag", "Torsdag", "Fredag")
WEEKDAY_TO_DAY = dict(enumerate(DAYS))

logger = logging.getLogger(__name__)


def crossing_names(crossings: Iterable[Any]) -> list[str]:
    names: list[str] = []
    for crossing in crossings:
        if isinstance(crossing, dict):
            name = str(crossing.get("name") or "").strip()
        else:
            name = str(crossing or "").strip()
        if name:
            names.append(name)
    return names


def auto_fill(
    children: Sequence[str],
    crossings: Iterable[Any],
    days: Sequence[str] = DAYS,
    rng: Optional[random.Random] = None,
) -> tuple[dict[str, dict[str, dict[str, str]]], dict[str, int]]:
    """Distribute the children round-robin over every (crossing, day) slot.

    The children are shuffled first, then assigned in crossing-major order so
    every child ends up with the floor or ceiling of slots / children duties.
    Nothing stops a child from getting two crossings on the same day.
    """
    names = crossing_names(crossings)
    pool = [str(child).strip() for child in children if str(child or "").strip()]
    if not pool or not names:
        raise ValueError("No children or crossings available for auto-fill")
    shuffled = list(pool)
    (rng or random).shuffle(shuffled)
    duties: dict[str, dict[str, str]] = {}
    distribution: Counter[str] = Counter()
    index = 0
    for crossing in names:
        duties[crossing] = {}
        for day in days:
            child = shuffled[index % len(shuffled)]
            duties[crossing][day] = child
            distribution[child] += 1
            index += 1
    return {"duties": duties}, dict(distribution)


def _cell(value: Any, label: str) -> tuple[str, str]:
    if isinstance(value, dict):
        crossing = str(value.get("crossing") or "").strip()
        day = str(value.get("day") or "").strip()
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        crossing, day = (str(part).strip() for part in value)
    else:
        raise ValueError(f"{label} must name a crossing and a day")
    if not crossing or not day:
        raise ValueError(f"{label} must name a crossing and a day")
    if day not in DAYS:
        raise ValueError(f"{label} day must be one of {', '.join(DAYS)}")
    return crossing, day


def swap_cells(
    duties: dict[str, Any],
    source: Any,
    target: Any,
) -> tuple[dict[str, Any], dict[str, str]]:
    """Exchange two duty cells and describe the change as an audit payload.

    An occupied target swaps occupants; an empty target receives the source
    child and the source cell is cleared.
    """
    source_crossing, source_day = _cell(source, "source")
    target_crossing, target_day = _cell(target, "target")
    if (source_crossing, source_day) == (target_crossing, target_day):
        raise ValueError("source and target are the same cell")
    updated = copy.deepcopy(duties) if duties else {"duties": {}}
    table = updated.setdefault("duties", {})
    source_row = table.setdefault(source_crossing, {})
    target_row = table.setdefault(target_crossing, {})
    child = source_row.get(source_day)
    if not child:
        raise ValueError(f"No child assigned to {source_crossing} on {source_day}")
    target_child = target_row.get(target_day) or ""
    target_row[target_day] = child
    if target_child:
        source_row[source_day] = target_child
    else:
        del source_row[source_day]
    entry = {
        "fromChild": child,
        "toChild": target_child,
        "fromCrossing": source_crossing,
        "fromDay": source_day,
        "toCrossing": target_crossing,
        "toDay": target_day,
        "swapType": "swap" if target_child else "move",
    }
    return updated, entry


def duties_for_day(duties: dict[str, Any], day: str) -> list[dict[str, str]]:
    table = duties.get("duties", {}) if isinstance(duties, dict) else {}
    return [
        {"child": days[day], "crossing": crossing}
        for crossing, days in table.items()
        if isinstance(days, dict) and days.get(day)
    ]


def child_workload(duties: dict[str, Any]) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for days in duties.get("duties", {}).values():
        counts.update(child for child in days.values() if child)
    return dict(counts)


class DutyManager:
    def __init__(
        self,
        data_service: DataService,
        audit_log: AuditLogManager,
        change_feed: ChangeFeed,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.data_service = data_service
        self.audit_log = audit_log
        self.change_feed = change_feed
        self._rng = rng

    def get_duties(self) -> dict[str, Any]:
        return self.data_service.get_duties()

    def _publish(self, event_type: str, duties: dict[str, Any]) -> str:
        stamp = self.change_feed.touch()
        self.change_feed.notify_duty_update({"type": event_type, "data": duties, "timestamp": stamp})
        return stamp

    def replace_duties(self, payload: Any) -> str:
        duties = normalize_duties(payload)
        self.data_service.store_duties(duties)
        logger.info("Duties replaced (%d crossings)", len(duties["duties"]))
        return self._publish("duties-updated", duties)

    def auto_fill(self) -> dict[str, Any]:
        children = self.data_service.get_children()["children"]
        crossings = self.data_service.get_crossings()["crossings"]
        duties, distribution = auto_fill(children, crossings, rng=self._rng)
        try:
            self.audit_log.clear()
        except StorageError:
            logger.exception("Failed to clear audit log after auto-fill")
        self.data_service.store_duties(duties)
        stamp = self._publish("duties-auto-filled", duties)
        logger.info("Auto-filled duties for %d children over %d crossings", len(distribution), len(duties["duties"]))
        return {"duties": duties, "distribution": distribution, "lastUpdate": stamp}

    def swap(self, source: Any, target: Any) -> dict[str, Any]:
        configured = set(crossing_names(self.data_service.get_crossings()["crossings"]))
        for label, cell in (("source", source), ("target", target)):
            crossing, _ = _cell(cell, label)
            if crossing not in configured:
                raise ValueError(f"Unknown crossing {crossing!r}")
        duties, audit_payload = swap_cells(self.get_duties(), source, target)
        self.data_service.store_duties(duties)
        entry = self.audit_log.append(audit_payload)
        stamp = self._publish("duties-updated", duties)
        return {"duties": duties, "auditEntry": entry, "lastUpdate": stamp}

    def duties_for_weekday(self, weekday: int) -> Optional[list[dict[str, str]]]:
        day = WEEKDAY_TO_DAY.get(weekday)
        if day is None:
            return None
        return duties_for_day(self.get_duties(), day)

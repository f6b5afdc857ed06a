from __future__ import annotations

import random
from collections import Counter

import pytest

from audit_log import AuditLogManager
from change_feed import ChangeFeed
from duty_service import DAYS, DutyManager, auto_fill, child_workload, duties_for_day, swap_cells


def _manager(data_service, seed=3):
    feed = ChangeFeed()
    audit = AuditLogManager(data_service)
    return DutyManager(data_service, audit, feed, rng=random.Random(seed)), audit, feed


def test_auto_fill_fills_every_slot_evenly():
    children = ["Ada", "Bob", "Cleo", "Dag"]
    crossings = [{"name": "Elm St"}, {"name": "Oak Ave"}, "Pine Rd"]

    duties, distribution = auto_fill(children, crossings, rng=random.Random(1))

    table = duties["duties"]
    assert set(table) == {"Elm St", "Oak Ave", "Pine Rd"}
    for days in table.values():
        assert list(days) == list(DAYS)
        assert all(child in children for child in days.values())
    assert sum(distribution.values()) == 15
    assert max(distribution.values()) - min(distribution.values()) <= 1
    assert distribution == child_workload(duties)


def test_auto_fill_two_children_one_crossing():
    duties, distribution = auto_fill(["Ada", "Bob"], [{"name": "Elm St"}], rng=random.Random(5))

    assert len(duties["duties"]["Elm St"]) == 5
    assert sorted(distribution.values()) == [2, 3]


def test_auto_fill_more_children_than_slots():
    children = [f"child-{i}" for i in range(8)]
    _, distribution = auto_fill(children, ["Elm St"], rng=random.Random(2))

    assert sum(distribution.values()) == 5
    assert set(distribution.values()) == {1}


@pytest.mark.parametrize("children,crossings", [([], ["Elm St"]), (["Ada"], []), (["  "], [{"name": ""}])])
def test_auto_fill_requires_children_and_crossings(children, crossings):
    with pytest.raises(ValueError, match="No children or crossings"):
        auto_fill(children, crossings)


def test_swap_cells_exchanges_occupants():
    duties = {"duties": {"Elm St": {"Mandag": "Ada"}, "Oak Ave": {"Onsdag": "Bob"}}}

    updated, entry = swap_cells(
        duties,
        {"crossing": "Elm St", "day": "Mandag"},
        {"crossing": "Oak Ave", "day": "Onsdag"},
    )

    assert updated["duties"]["Elm St"]["Mandag"] == "Bob"
    assert updated["duties"]["Oak Ave"]["Onsdag"] == "Ada"
    assert entry["swapType"] == "swap"
    assert entry["fromChild"] == "Ada"
    assert entry["toChild"] == "Bob"
    # input is left untouched
    assert duties["duties"]["Elm St"]["Mandag"] == "Ada"


def test_swap_cells_moves_into_empty_cell():
    duties = {"duties": {"Elm St": {"Mandag": "Ada"}}}

    updated, entry = swap_cells(duties, ("Elm St", "Mandag"), ("Oak Ave", "Fredag"))

    assert "Mandag" not in updated["duties"]["Elm St"]
    assert updated["duties"]["Oak Ave"]["Fredag"] == "Ada"
    assert entry["swapType"] == "move"
    assert entry["toChild"] == ""


def test_swap_cells_rejects_bad_cells():
    duties = {"duties": {"Elm St": {"Mandag": "Ada"}}}

    with pytest.raises(ValueError, match="same cell"):
        swap_cells(duties, ("Elm St", "Mandag"), ("Elm St", "Mandag"))
    with pytest.raises(ValueError, match="No child assigned"):
        swap_cells(duties, ("Elm St", "Tirsdag"), ("Elm St", "Mandag"))
    with pytest.raises(ValueError, match="day must be one of"):
        swap_cells(duties, ("Elm St", "Lørdag"), ("Elm St", "Mandag"))
    with pytest.raises(ValueError, match="must name a crossing"):
        swap_cells(duties, "Elm St", ("Elm St", "Mandag"))


def test_duties_for_day_lists_assigned_crossings():
    duties = {"duties": {"Elm St": {"Mandag": "Ada"}, "Oak Ave": {"Tirsdag": "Bob"}}}

    assert duties_for_day(duties, "Mandag") == [{"child": "Ada", "crossing": "Elm St"}]
    assert duties_for_day(duties, "Fredag") == []


def test_manager_auto_fill_clears_audit_log_and_bumps_version(seeded):
    manager, audit, feed = _manager(seeded)
    audit.append({"fromChild": "Ada", "fromCrossing": "Elm St", "fromDay": "Mandag", "toCrossing": "Oak Ave", "toDay": "Fredag"})
    before = feed.last_update

    result = manager.auto_fill()

    assert audit.list_entries() == []
    assert result["lastUpdate"] > before
    assert seeded.get_duties() == result["duties"]
    assert sum(result["distribution"].values()) == 10
    assert set(result["distribution"]) == {"Ada", "Bob", "Cleo"}


def test_manager_swap_records_one_audit_entry(seeded):
    manager, audit, feed = _manager(seeded)
    client = feed.subscribe()
    client.messages.get_nowait()

    result = manager.swap({"crossing": "Elm St", "day": "Mandag"}, {"crossing": "Oak Ave", "day": "Mandag"})

    entries = audit.list_entries()
    assert len(entries) == 1
    assert entries[0] == result["auditEntry"]
    assert seeded.get_duties()["duties"]["Elm St"]["Mandag"] == "Cleo"
    assert seeded.get_duties()["duties"]["Oak Ave"]["Mandag"] == "Ada"
    update = client.messages.get_nowait()
    assert update["type"] == "duty-update"
    assert update["data"]["type"] == "duties-updated"


def test_manager_duties_for_weekday(seeded):
    manager, _, _ = _manager(seeded)

    assert manager.duties_for_weekday(0) == [
        {"child": "Ada", "crossing": "Elm St"},
        {"child": "Cleo", "crossing": "Oak Ave"},
    ]
    assert manager.duties_for_weekday(5) is None


def test_manager_auto_fill_is_balanced_across_seeds(seeded):
    for seed in range(5):
        manager, _, _ = _manager(seeded, seed=seed)
        counts = Counter(child_workload(manager.auto_fill()["duties"]))
        assert max(counts.values()) - min(counts.values()) <= 1


def test_manager_swap_rejects_unconfigured_crossing(seeded):
    manager, audit, _ = _manager(seeded)
    before = seeded.get_duties()

    with pytest.raises(ValueError, match="Unknown crossing 'Birch Ln'"):
        manager.swap({"crossing": "Elm St", "day": "Mandag"}, {"crossing": "Birch Ln", "day": "Mandag"})

    assert seeded.get_duties() == before
    assert "Birch Ln" not in seeded.get_duties()["duties"]
    assert audit.list_entries() == []

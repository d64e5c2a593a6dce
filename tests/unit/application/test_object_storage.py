# tests/unit/application/test_object_storage.py
"""Tests for LeveledObjectStorage and EntityHandles."""

from __future__ import annotations

from dataclasses import dataclass

from nested_uow.application.staging import EntityHandles, LeveledObjectStorage


@dataclass
class _Row:
    """Value-equal rows: identity, not equality, must drive dedup."""

    p: str


def test_discard_at_or_above_returns_and_removes_upper_levels() -> None:
    storage = LeveledObjectStorage()
    first = _Row("first")
    second = _Row("second")
    storage.add_at_level(1, first)
    storage.add_at_level(2, second)

    discarded = storage.discard_at_or_above(2)

    assert storage.all_entries() == [first]
    assert [entry.entity for entry in discarded] == [second]
    assert discarded[0].level == 2


def test_duplicate_addition_at_same_level_is_noop() -> None:
    storage = LeveledObjectStorage()
    row = _Row("value")

    assert storage.add_at_level(1, row) is True
    assert storage.add_at_level(1, row) is False

    assert storage.all_entries() == [row]
    assert len(storage) == 1


def test_same_entity_at_two_levels_is_kept_twice() -> None:
    storage = LeveledObjectStorage()
    row = _Row("value")

    storage.add_at_level(1, row)
    storage.add_at_level(3, row)

    entries = storage.all_entries()
    assert len(entries) == 2
    assert entries[0] is row and entries[1] is row


def test_equal_but_distinct_entities_are_not_deduplicated() -> None:
    storage = LeveledObjectStorage()
    a = _Row("same")
    b = _Row("same")
    assert a == b

    storage.add_at_level(1, a)
    storage.add_at_level(1, b)

    entries = storage.all_entries()
    assert len(entries) == 2
    assert entries[0] is a and entries[1] is b


def test_all_entries_orders_by_level_then_insertion() -> None:
    storage = LeveledObjectStorage()
    a, b, c, d = _Row("a"), _Row("b"), _Row("c"), _Row("d")

    storage.add_at_level(2, c)
    storage.add_at_level(1, a)
    storage.add_at_level(2, d)
    storage.add_at_level(1, b)

    assert [row.p for row in storage.all_entries()] == ["a", "b", "c", "d"]
    assert storage.levels() == [1, 2]


def test_discard_below_every_level_is_noop() -> None:
    storage = LeveledObjectStorage()
    row = _Row("x")
    storage.add_at_level(1, row)

    assert storage.discard_at_or_above(5) == []
    assert storage.all_entries() == [row]


def test_discard_spans_non_contiguous_levels() -> None:
    storage = LeveledObjectStorage()
    rows = [_Row(str(i)) for i in range(4)]
    for level, row in zip((1, 2, 4, 7), rows, strict=True):
        storage.add_at_level(level, row)

    discarded = storage.discard_at_or_above(2)

    assert [entry.level for entry in discarded] == [2, 4, 7]
    assert storage.all_entries() == [rows[0]]


def test_clear_removes_everything() -> None:
    storage = LeveledObjectStorage()
    storage.add_at_level(1, _Row("a"))
    storage.add_at_level(9, _Row("b"))

    storage.clear()

    assert storage.all_entries() == []
    assert not storage
    assert len(storage) == 0


def test_shared_handles_give_global_staging_order() -> None:
    handles = EntityHandles()
    inserts = LeveledObjectStorage(handles)
    updates = LeveledObjectStorage(handles)
    a, b, c = _Row("a"), _Row("b"), _Row("c")

    inserts.add_at_level(1, a)
    updates.add_at_level(1, b)
    inserts.add_at_level(1, c)

    merged = sorted([*inserts.entries(), *updates.entries()], key=lambda e: e.sequence)
    assert [entry.entity for entry in merged] == [a, b, c]


def test_handles_are_stable_per_entity_and_reset_on_clear() -> None:
    handles = EntityHandles()
    a, b = _Row("a"), _Row("b")

    ha = handles.handle_for(a)
    assert handles.handle_for(a) == ha
    assert handles.handle_for(b) != ha
    assert len(handles) == 2

    handles.clear()
    assert len(handles) == 0

"""Tests for the per-session memory store."""

import asyncio
from pathlib import Path

import pytest

from chat_agent.memory.store import MemoryStore

pytestmark = pytest.mark.usefixtures("_no_turso")


@pytest.fixture
def store(db_path: Path) -> MemoryStore:
    return MemoryStore("s1", db_path=db_path)


# -- store / retrieve --------------------------------------------------------


async def test_store_then_retrieve(store: MemoryStore) -> None:
    await store.store("name", "Ada")

    entry = await store.retrieve("name")
    assert entry is not None
    assert entry.value == "Ada"
    assert entry.created_at == entry.updated_at


async def test_retrieve_missing_returns_none(store: MemoryStore) -> None:
    assert await store.retrieve("nope") is None


async def test_restore_keeps_created_at_and_advances_updated_at(store: MemoryStore) -> None:
    first = await store.store("k", "a")
    second = await store.store("k", "b")

    assert second.value == "b"
    assert second.created_at == first.created_at
    assert second.updated_at > first.updated_at

    stored = await store.retrieve("k")
    assert stored == second


async def test_updated_at_strictly_increases(store: MemoryStore) -> None:
    stamps = [(await store.store("k", str(i))).updated_at for i in range(5)]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 5


async def test_concurrent_stores_do_not_lose_entries(store: MemoryStore) -> None:
    await asyncio.gather(*(store.store(f"k{i}", str(i)) for i in range(10)))
    entries = await store.list_all()
    assert {e.key for e in entries} == {f"k{i}" for i in range(10)}


# -- forget / clear ----------------------------------------------------------


async def test_forget_true_once_then_false(store: MemoryStore) -> None:
    await store.store("k", "v")

    assert await store.forget("k") is True
    assert await store.forget("k") is False
    assert await store.retrieve("k") is None


async def test_forget_unknown_key(store: MemoryStore) -> None:
    assert await store.forget("never-stored") is False


async def test_clear_returns_count(store: MemoryStore) -> None:
    await store.store("a", "1")
    await store.store("b", "2")

    assert await store.clear() == 2
    assert await store.list_all() == []
    assert await store.clear() == 0


# -- list_all / isolation ----------------------------------------------------


async def test_list_all_in_insertion_order(store: MemoryStore) -> None:
    await store.store("first", "1")
    await store.store("second", "2")
    await store.store("first", "updated")

    keys = [e.key for e in await store.list_all()]
    assert keys == ["first", "second"]


async def test_sessions_are_isolated(db_path: Path) -> None:
    a = MemoryStore("a", db_path=db_path)
    b = MemoryStore("b", db_path=db_path)
    await a.store("k", "from-a")

    assert await b.retrieve("k") is None
    assert await b.forget("k") is False
    assert (await a.retrieve("k")).value == "from-a"


async def test_survives_new_instance(db_path: Path) -> None:
    await MemoryStore("s1", db_path=db_path).store("k", "v")

    reopened = MemoryStore("s1", db_path=db_path)
    entry = await reopened.retrieve("k")
    assert entry is not None
    assert entry.value == "v"

"""Tests for KeyedLock."""

from __future__ import annotations

import asyncio

from mermex.resilience.locks import KeyedLock


class TestKeyedLock:
    async def test_same_key_is_serialized(self) -> None:
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("k"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    async def test_different_keys_overlap(self) -> None:
        locks = KeyedLock()
        inside = 0
        peak = 0

        async def worker(key: str) -> None:
            nonlocal inside, peak
            async with locks.hold(key):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(worker("a"), worker("b"))
        assert peak == 2

    async def test_entries_removed_after_release(self) -> None:
        locks = KeyedLock()
        async with locks.hold(("out", "diagram", "svg")):
            assert locks.active_keys == [("out", "diagram", "svg")]
        assert locks.active_keys == []

    async def test_released_on_exception(self) -> None:
        locks = KeyedLock()
        try:
            async with locks.hold("k"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert locks.active_keys == []
        async with locks.hold("k"):
            pass

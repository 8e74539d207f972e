"""Tests for StrategySelector — probing, fallback, breakers, retry."""

from __future__ import annotations

import asyncio

import pytest

from mermex.backends import RenderOptions
from mermex.backends.fakes import FakeBackend
from mermex.constants import BackendRole
from mermex.errors import RenderFailure, StrategyUnavailable
from mermex.strategy import StrategySelector

OPTIONS = RenderOptions()


class _FlakyBackend(FakeBackend):
    """Raises ``errors`` in order, then renders normally."""

    def __init__(self, name: str, errors: list[Exception]) -> None:
        super().__init__(name)
        self._errors = list(errors)
        self.attempts = 0

    async def render(self, text: str, options: RenderOptions) -> bytes:
        self.attempts += 1
        if self._errors:
            raise self._errors.pop(0)
        return await super().render(text, options)


class _SlowProbe(FakeBackend):
    async def probe(self) -> bool:
        self.probe_count += 1
        await asyncio.sleep(0.01)
        return self.available


class TestResolve:
    async def test_primary_first(
        self, selector: StrategySelector, primary: FakeBackend
    ) -> None:
        assert await selector.resolve() is primary

    async def test_falls_back_when_primary_probe_fails(
        self,
        selector: StrategySelector,
        primary: FakeBackend,
        fallback: FakeBackend,
    ) -> None:
        primary.available = False
        assert await selector.resolve() is fallback

    async def test_preferred_backend_wins(
        self, selector: StrategySelector, fallback: FakeBackend
    ) -> None:
        assert await selector.resolve("fallback") is fallback

    async def test_unavailable_preferred_uses_priority_order(
        self,
        selector: StrategySelector,
        primary: FakeBackend,
        fallback: FakeBackend,
    ) -> None:
        fallback.available = False
        assert await selector.resolve("fallback") is primary

    async def test_unknown_preferred_ignored(
        self, selector: StrategySelector, primary: FakeBackend
    ) -> None:
        assert await selector.resolve("browser") is primary

    async def test_nothing_available(
        self,
        selector: StrategySelector,
        primary: FakeBackend,
        fallback: FakeBackend,
    ) -> None:
        primary.available = False
        fallback.available = False
        with pytest.raises(StrategyUnavailable) as exc_info:
            await selector.resolve()
        assert exc_info.value.tried == ["primary", "fallback"]

    async def test_empty_backend_list(self) -> None:
        with pytest.raises(StrategyUnavailable, match="none configured"):
            await StrategySelector([]).resolve()

    async def test_probe_exception_counts_as_unavailable(
        self, fallback: FakeBackend
    ) -> None:
        class _Broken(FakeBackend):
            async def probe(self) -> bool:
                raise OSError("spawn failed")

        selector = StrategySelector([_Broken("broken"), fallback])
        assert await selector.resolve() is fallback

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate backend names"):
            StrategySelector([FakeBackend("a"), FakeBackend("a")])


class TestProbeCache:
    async def test_probe_cached_within_ttl(self) -> None:
        now = [100.0]
        backend = FakeBackend("primary")
        selector = StrategySelector(
            [backend], probe_ttl=30.0, clock=lambda: now[0]
        )
        await selector.resolve()
        now[0] += 29.0
        await selector.resolve()
        assert backend.probe_count == 1

    async def test_reprobed_after_ttl(self) -> None:
        now = [100.0]
        backend = FakeBackend("primary")
        selector = StrategySelector(
            [backend], probe_ttl=30.0, clock=lambda: now[0]
        )
        await selector.resolve()
        backend.available = False
        now[0] += 31.0
        with pytest.raises(StrategyUnavailable):
            await selector.resolve()
        assert backend.probe_count == 2

    async def test_invalidate_forces_reprobe(
        self, selector: StrategySelector, primary: FakeBackend
    ) -> None:
        await selector.resolve()
        selector.invalidate("primary")
        await selector.resolve()
        assert primary.probe_count == 2

    async def test_concurrent_resolves_probe_once(self) -> None:
        backend = _SlowProbe("slow")
        selector = StrategySelector([backend])
        results = await asyncio.gather(
            *(selector.resolve() for _ in range(5))
        )
        assert all(r is backend for r in results)
        assert backend.probe_count == 1

    async def test_available_lists_usable_backends(
        self, selector: StrategySelector, primary: FakeBackend
    ) -> None:
        primary.available = False
        assert await selector.available() == ["fallback"]


class TestRenderFallback:
    async def test_renders_on_primary(
        self, selector: StrategySelector, fallback: FakeBackend
    ) -> None:
        result = await selector.render("graph TD", OPTIONS)
        assert result.backend == "primary"
        assert result.data == b"<svg:primary>graph TD"
        assert fallback.render_count == 0

    async def test_failure_falls_back_once(
        self,
        fallback: FakeBackend,
    ) -> None:
        primary = FakeBackend("primary", error=RuntimeError("crashed"))
        selector = StrategySelector([primary, fallback])
        result = await selector.render("graph TD", OPTIONS)
        assert result.backend == "fallback"
        assert primary.render_count == 1
        assert fallback.render_count == 1

    async def test_failure_invalidates_probe(
        self, fallback: FakeBackend
    ) -> None:
        primary = FakeBackend("primary", error=RuntimeError("crashed"))
        selector = StrategySelector([primary, fallback])
        await selector.render("graph TD", OPTIONS)
        assert primary.probe_count == 1
        await selector.resolve()
        assert primary.probe_count == 2

    async def test_both_fail_names_both(self) -> None:
        selector = StrategySelector([
            FakeBackend("primary", error=RuntimeError("crashed")),
            FakeBackend(
                "fallback",
                role=BackendRole.FALLBACK,
                error=RuntimeError("also crashed"),
            ),
        ])
        with pytest.raises(RenderFailure) as exc_info:
            await selector.render("graph TD", OPTIONS)
        message = str(exc_info.value)
        assert "primary failed (crashed)" in message
        assert "fallback failed (also crashed)" in message

    async def test_no_fallback_available(
        self, fallback: FakeBackend
    ) -> None:
        fallback.available = False
        primary = FakeBackend("primary", fail_on=("BAD",))
        selector = StrategySelector([primary, fallback])
        with pytest.raises(RenderFailure, match="no fallback"):
            await selector.render("graph BAD", OPTIONS)

    async def test_grammar_error_not_retried(
        self, fallback: FakeBackend
    ) -> None:
        fallback.available = False
        primary = FakeBackend("primary", fail_on=("BAD",))
        selector = StrategySelector([primary, fallback])
        with pytest.raises(RenderFailure):
            await selector.render("graph BAD", OPTIONS)
        assert primary.render_count == 1


class TestRetry:
    async def test_transient_error_retried_on_same_backend(
        self, fallback: FakeBackend
    ) -> None:
        flaky = _FlakyBackend("flaky", [TimeoutError("render timed out")])
        selector = StrategySelector([flaky, fallback])
        result = await selector.render("graph TD", OPTIONS)
        assert result.backend == "flaky"
        assert fallback.render_count == 0

    async def test_retry_exhausted_then_fallback(
        self, fallback: FakeBackend
    ) -> None:
        flaky = _FlakyBackend(
            "flaky",
            [TimeoutError("timed out"), TimeoutError("timed out")],
        )
        selector = StrategySelector([flaky, fallback])
        result = await selector.render("graph TD", OPTIONS)
        assert result.backend == "fallback"
        assert flaky.attempts == 2


class TestCircuitBreaker:
    async def test_opens_after_threshold(
        self, fallback: FakeBackend
    ) -> None:
        primary = FakeBackend("primary", error=RuntimeError("crashed"))
        selector = StrategySelector(
            [primary, fallback], failure_threshold=2
        )
        await selector.render("graph TD", OPTIONS)
        await selector.render("graph TD", OPTIONS)
        assert selector.breaker("primary").opened

        probes_before = primary.probe_count
        result = await selector.render("graph TD", OPTIONS)
        assert result.backend == "fallback"
        assert primary.render_count == 2
        assert primary.probe_count == probes_before

    async def test_grammar_errors_do_not_open_breaker(
        self, fallback: FakeBackend
    ) -> None:
        primary = FakeBackend("primary", fail_on=("BAD",))
        selector = StrategySelector(
            [primary, fallback], failure_threshold=2
        )
        for _ in range(3):
            await selector.render("graph BAD", OPTIONS)
        assert not selector.breaker("primary").opened
        assert primary.render_count == 3

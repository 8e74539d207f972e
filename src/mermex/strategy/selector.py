"""Backend selection with probe caching, circuit breakers and fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from mermex.backends.base import RenderBackend, RenderOptions
from mermex.constants import (
    CB_BACKEND_FAILURE_THRESHOLD,
    CB_BACKEND_RECOVERY_TIMEOUT,
    PROBE_TTL_SECONDS,
    RENDER_RETRY_INITIAL_WAIT,
    RENDER_RETRY_MAX_ATTEMPTS,
    RENDER_RETRY_MAX_WAIT,
)
from mermex.errors import RenderFailure, StrategyUnavailable, truncate_reason
from mermex.resilience.errors import classify_error, is_grammar_error, is_retryable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    """Bytes produced by a render plus the backend that produced them."""

    backend: str
    data: bytes


def _counts_as_backend_failure(
    thrown_type: type, thrown_value: BaseException
) -> bool:
    """Return True if the error should count toward the breaker.

    The circuitbreaker library calls this with (thrown_type, thrown_value).
    A grammar error is the diagram's fault, so a document full of broken
    diagrams must not open the breaker for a healthy backend.
    """
    return not is_grammar_error(thrown_value)


@retry(
    stop=stop_after_attempt(RENDER_RETRY_MAX_ATTEMPTS),
    wait=wait_exponential_jitter(
        initial=RENDER_RETRY_INITIAL_WAIT, max=RENDER_RETRY_MAX_WAIT
    ),
    retry=retry_if_exception(is_retryable),
    reraise=True,
)
async def guarded_render(
    backend: RenderBackend,
    breaker: CircuitBreaker,  # pyright: ignore[reportUnknownParameterType]
    text: str,
    options: RenderOptions,
) -> bytes:
    """Circuit-breaker-protected render with retry of transient errors.

    - Raises CircuitBreakerError without calling the backend while the
      breaker is open.
    - Tenacity retries timeouts, 429/5xx and connection errors with
      jittered exponential backoff. Grammar errors fail immediately.
    """
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        return await backend.render(text, options)


class StrategySelector:
    """Picks the render backend for each job, in priority order.

    Probe results are cached per backend for ``probe_ttl`` seconds and
    dropped whenever that backend fails a render. ``resolve`` touches
    nothing but that cache, so concurrent callers are safe; probes of
    one backend are serialized behind its own lock.
    """

    def __init__(
        self,
        backends: Sequence[RenderBackend],
        *,
        probe_ttl: float = PROBE_TTL_SECONDS,
        failure_threshold: int = CB_BACKEND_FAILURE_THRESHOLD,
        recovery_timeout: int = CB_BACKEND_RECOVERY_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        names = [b.name for b in backends]
        if len(set(names)) != len(names):
            msg = f"Duplicate backend names: {names}"
            raise ValueError(msg)

        self._backends = list(backends)
        self._probe_ttl = probe_ttl
        self._clock = clock
        self._probes: dict[str, tuple[bool, float]] = {}
        self._probe_locks = {name: asyncio.Lock() for name in names}
        self._breakers: dict[str, CircuitBreaker] = {  # pyright: ignore[reportUnknownVariableType]
            name: CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
                failure_threshold=failure_threshold,
                recovery_timeout=recovery_timeout,
                expected_exception=_counts_as_backend_failure,
                name=f"backend_{name}",
            )
            for name in names
        }

    @property
    def backends(self) -> list[RenderBackend]:
        return list(self._backends)

    def breaker(self, name: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
        return self._breakers[name]

    def invalidate(self, name: str) -> None:
        """Forget the cached probe result for ``name``."""
        if self._probes.pop(name, None) is not None:
            logger.debug("event=probe_invalidated backend=%s", name)

    async def resolve(self, preferred: str | None = None) -> RenderBackend:
        """Return the first available backend, ``preferred`` first.

        Raises StrategyUnavailable when nothing probes successfully.
        """
        tried: list[str] = []
        for backend in self._candidates(preferred):
            tried.append(backend.name)
            if await self._is_available(backend):
                return backend
        raise StrategyUnavailable(tried)

    async def available(self) -> list[str]:
        """Names of backends that are usable right now."""
        return [
            b.name for b in self._backends if await self._is_available(b)
        ]

    async def render(
        self,
        text: str,
        options: RenderOptions,
        preferred: str | None = None,
    ) -> RenderResult:
        """Render on the resolved backend, falling back once on failure."""
        backend = await self.resolve(preferred)
        try:
            data = await guarded_render(
                backend, self._breakers[backend.name], text, options
            )
            return RenderResult(backend=backend.name, data=data)
        except Exception as first:
            self.invalidate(backend.name)
            logger.warning(
                "event=render_failed backend=%s error_class=%s error=%s",
                backend.name,
                classify_error(first).value,
                truncate_reason(str(first)),
            )
            first_error = first

        fallback = await self._next_available(exclude=backend.name)
        if fallback is None:
            msg = (
                f"{backend.name} failed ({truncate_reason(str(first_error))}); "
                "no fallback backend available"
            )
            raise RenderFailure(msg) from first_error

        logger.info(
            "event=render_fallback from=%s to=%s", backend.name, fallback.name
        )
        try:
            data = await guarded_render(
                fallback, self._breakers[fallback.name], text, options
            )
        except Exception as second:
            self.invalidate(fallback.name)
            msg = (
                f"{backend.name} failed ({truncate_reason(str(first_error))}); "
                f"{fallback.name} failed ({truncate_reason(str(second))})"
            )
            raise RenderFailure(msg) from second
        return RenderResult(backend=fallback.name, data=data)

    def _candidates(self, preferred: str | None) -> list[RenderBackend]:
        if not preferred:
            return list(self._backends)
        chosen = [b for b in self._backends if b.name == preferred]
        if not chosen:
            logger.warning("event=unknown_backend preferred=%s", preferred)
            return list(self._backends)
        return chosen + [b for b in self._backends if b.name != preferred]

    async def _next_available(self, exclude: str) -> RenderBackend | None:
        for backend in self._backends:
            if backend.name == exclude:
                continue
            if await self._is_available(backend):
                return backend
        return None

    async def _is_available(self, backend: RenderBackend) -> bool:
        breaker = self._breakers[backend.name]
        if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
            logger.debug("event=breaker_open backend=%s", backend.name)
            return False
        return await self._probe(backend)

    async def _probe(self, backend: RenderBackend) -> bool:
        async with self._probe_locks[backend.name]:
            cached = self._probes.get(backend.name)
            now = self._clock()
            if cached is not None and now - cached[1] < self._probe_ttl:
                return cached[0]

            try:
                ok = bool(await backend.probe())
            except Exception as exc:
                logger.warning(
                    "event=probe_error backend=%s error=%s",
                    backend.name,
                    truncate_reason(str(exc)),
                )
                ok = False

            self._probes[backend.name] = (ok, self._clock())
            logger.debug(
                "event=probe backend=%s available=%s", backend.name, ok
            )
            return ok

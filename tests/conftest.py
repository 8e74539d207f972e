"""Shared test fixtures — fake backends, settings, orchestrator."""

import os

# Tests never read MERMEX_* from the developer's shell. Cleared at
# import time, before any Settings() is created.
for _key in [k for k in os.environ if k.startswith("MERMEX_")]:
    del os.environ[_key]

from collections.abc import Iterator
from pathlib import Path

import pytest
from tenacity import wait_none

from mermex.backends.fakes import FakeBackend
from mermex.config import Settings
from mermex.constants import BackendRole, SourceKind
from mermex.discovery import DiagramSource
from mermex.services import BatchOrchestrator, ProgressEvent
from mermex.strategy import StrategySelector, guarded_render

FLOWCHART = "flowchart TD\n    A --> B"
SEQUENCE = "sequenceDiagram\n    Alice->>Bob: Hi"


@pytest.fixture(autouse=True)
def _disable_retry_wait() -> Iterator[None]:
    """Disable tenacity wait for all tests."""
    original_wait = guarded_render.retry.wait  # type: ignore[attr-defined]
    guarded_render.retry.wait = wait_none()  # type: ignore[attr-defined]
    yield
    guarded_render.retry.wait = original_wait  # type: ignore[attr-defined]


def make_source(
    path: Path,
    text: str = FLOWCHART,
    *,
    block_index: int | None = None,
) -> DiagramSource:
    """Build a DiagramSource without touching the filesystem."""
    kind = (
        SourceKind.STANDALONE
        if block_index is None
        else SourceKind.EMBEDDED_BLOCK
    )
    return DiagramSource(
        path=path,
        raw_text=text,
        kind=kind,
        block_index=block_index,
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture()
def primary() -> FakeBackend:
    return FakeBackend("primary")


@pytest.fixture()
def fallback() -> FakeBackend:
    return FakeBackend("fallback", role=BackendRole.FALLBACK)


@pytest.fixture()
def selector(
    primary: FakeBackend, fallback: FakeBackend
) -> StrategySelector:
    return StrategySelector([primary, fallback])


@pytest.fixture()
def events() -> list[ProgressEvent]:
    return []


@pytest.fixture()
def orchestrator(
    settings: Settings,
    selector: StrategySelector,
    events: list[ProgressEvent],
) -> BatchOrchestrator:
    return BatchOrchestrator(
        settings, selector=selector, on_progress=events.append
    )

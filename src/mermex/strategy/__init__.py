"""Render backend selection."""

from mermex.strategy.selector import (
    RenderResult,
    StrategySelector,
    guarded_render,
)

__all__ = ["RenderResult", "StrategySelector", "guarded_render"]

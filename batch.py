"""
batch.py

Concurrent conversion of many diagram sources.

At most ``max_concurrency`` conversions run at once, and each one holds a
sandbox from the pool for its whole render + pipeline run, so the number
of renders in flight never exceeds ``min(max_concurrency, pool.size)``.
One item's failure is recorded in its ``ConversionResult`` and never
stops the other items.

``cancel()`` stops dispatch: items that have not started yet finish as
``stage="cancelled"``; items already running complete (or time out).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from debug_trace import trace
from mermaid.renderer import Renderer
from mermaid.sandbox import SandboxPool, handle_factory
from models import DiagramSource
from pipeline import ConversionResult, convert_source
from settings import ConversionConfig


@dataclass
class BatchResult:
    """Per-item results (in input order) plus counts."""
    results: List[ConversionResult] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def cancelled(self) -> int:
        return sum(1 for r in self.results if r.stage == "cancelled")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success and r.stage != "cancelled")

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    def to_dict(self) -> Dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "elapsed": round(self.elapsed, 4),
            "results": [r.to_dict() for r in self.results],
        }


class BatchManager:
    """Run conversions concurrently over a shared sandbox pool.

    Args:
        renderer: Renderer implementation (``MmdcRenderer`` in production).
        pool: Sandbox pool; a pool sized from ``config.batch.pool_size``
            is created when omitted.
        config: Conversion config shared (read-only) by every item.
    """

    def __init__(self, renderer: Renderer, pool: Optional[SandboxPool] = None,
                 config: Optional[ConversionConfig] = None):
        self.config = config or ConversionConfig()
        self.renderer = renderer
        self.pool = pool or SandboxPool(self.config.batch.pool_size, handle_factory(self.config.renderer))
        self._cancelled = False
        self.started = 0

    def cancel(self) -> None:
        """Stop dispatching items that have not started yet."""
        if not self._cancelled:
            trace("batch cancelled; pending items will not start", "BATCH")
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    async def convert_many(self, sources: Sequence[DiagramSource],
                           max_concurrency: Optional[int] = None) -> BatchResult:
        """
        Convert *sources* concurrently.

        Args:
            sources: Diagram sources, converted independently.
            max_concurrency: Overrides ``config.batch.max_concurrency``.

        Returns:
            BatchResult with one result per source, in input order.
        """
        limit = self.config.batch.max_concurrency if max_concurrency is None else max_concurrency
        if limit < 1:
            raise ValueError("max_concurrency must be at least 1")
        semaphore = asyncio.Semaphore(limit)
        start = time.perf_counter()
        trace(f"batch of {len(sources)} (concurrency {limit}, pool {self.pool.size})", "BATCH")

        async def convert_single(index: int, source: DiagramSource) -> ConversionResult:
            async with semaphore:
                if self._cancelled:
                    return ConversionResult.cancelled(source, index)
                self.started += 1
                result = await convert_source(source, self.renderer, self.pool, self.config, index)
                trace(f"[{index}] {source.name or source.diagram_type}: "
                      f"{'ok' if result.success else result.stage}", "BATCH")
                return result

        tasks = [convert_single(i, s) for i, s in enumerate(sources)]
        results = await asyncio.gather(*tasks)

        batch = BatchResult(results=list(results), elapsed=time.perf_counter() - start)
        trace(f"batch done: {batch.succeeded} ok, {batch.failed} failed, "
              f"{batch.cancelled} cancelled", "BATCH")
        return batch

    def convert_many_sync(self, sources: Sequence[DiagramSource],
                          max_concurrency: Optional[int] = None) -> BatchResult:
        """Blocking wrapper around ``convert_many`` for non-async callers."""
        return asyncio.run(self.convert_many(sources, max_concurrency))

    def close(self) -> None:
        self.pool.close()

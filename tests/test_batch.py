"""
tests/test_batch.py

Concurrent batch conversion: isolation, bounds, timeouts, cancellation.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from batch import BatchManager, BatchResult
from errors import RenderFailure
from mermaid.sandbox import SandboxHandle, SandboxPool
from models import DiagramSource
from pipeline import ConversionResult

from samples import FLOWCHART_SVG, PIE_SVG, FakeRenderer, transient


def sources(count: int, unsupported=()):
    return [
        DiagramSource(f"src{i}", "gitgraph" if i in unsupported else "flowchart", f"d{i}")
        for i in range(count)
    ]


def outputs(count: int):
    return {f"src{i}": FLOWCHART_SVG for i in range(count)}


def run_batch(renderer, config, items, max_concurrency=None, manager=None):
    manager = manager or BatchManager(renderer, config=config)
    try:
        return asyncio.run(manager.convert_many(items, max_concurrency)), manager
    finally:
        manager.close()


class _CancelOnFirstRender(FakeRenderer):
    manager = None

    async def render(self, source, handle, timeout):
        self.manager.cancel()
        return await super().render(source, handle, timeout)


# ═══════════════════════════════════════════════════════════
# Isolation and ordering
# ═══════════════════════════════════════════════════════════


class TestIsolation:
    def test_one_unsupported_item(self, fast_config):
        renderer = FakeRenderer(outputs(5))
        batch, _ = run_batch(renderer, fast_config, sources(5, unsupported={3}))
        assert (batch.succeeded, batch.failed) == (4, 1)
        failed = batch.results[3]
        assert (failed.index, failed.stage) == (3, "dispatch")
        assert "src3" not in renderer.calls
        assert not batch.success

    def test_results_in_input_order(self, fast_config):
        renderer = FakeRenderer(outputs(6), delay=0.01)
        batch, _ = run_batch(renderer, fast_config, sources(6))
        assert [r.index for r in batch.results] == list(range(6))
        assert [r.name for r in batch.results] == [f"d{i}" for i in range(6)]
        assert batch.success

    def test_mixed_grammars(self, fast_config):
        renderer = FakeRenderer({"flow": FLOWCHART_SVG, "pie": PIE_SVG})
        items = [DiagramSource("flow", "flowchart"), DiagramSource("pie", "pie")]
        batch, _ = run_batch(renderer, fast_config, items)
        assert [r.diagram_type for r in batch.results] == ["flowchart", "pie"]

    def test_failure_does_not_stop_others(self, fast_config):
        renderer = FakeRenderer(outputs(3), failures={"src1": [RenderFailure("Parse error", transient=False)]})
        batch, _ = run_batch(renderer, fast_config, sources(3))
        assert [r.success for r in batch.results] == [True, False, True]
        assert batch.results[1].stage == "render"

    def test_empty_batch(self, fast_config):
        batch, _ = run_batch(FakeRenderer({}), fast_config, [])
        assert batch.results == []
        assert batch.success


# ═══════════════════════════════════════════════════════════
# Bounds
# ═══════════════════════════════════════════════════════════


class TestBounds:
    def test_pool_bounds_renders_in_flight(self, fast_config):
        renderer = FakeRenderer(outputs(6), delay=0.02)
        batch, manager = run_batch(renderer, fast_config, sources(6))
        assert batch.success
        assert renderer.max_in_flight <= fast_config.batch.pool_size
        assert manager.pool.created == fast_config.batch.pool_size

    def test_concurrency_limit(self, fast_config):
        renderer = FakeRenderer(outputs(4), delay=0.02)
        batch, _ = run_batch(renderer, fast_config, sources(4), max_concurrency=1)
        assert batch.success
        assert renderer.max_in_flight == 1

    def test_handles_reused(self, fast_config):
        renderer = FakeRenderer(outputs(6))
        run_batch(renderer, fast_config, sources(6))
        assert len(set(renderer.handles)) <= fast_config.batch.pool_size

    def test_invalid_concurrency(self, fast_config):
        manager = BatchManager(FakeRenderer({}), config=fast_config)
        with pytest.raises(ValueError):
            asyncio.run(manager.convert_many(sources(1), max_concurrency=-1))
        manager.close()


# ═══════════════════════════════════════════════════════════
# Timeouts and retries
# ═══════════════════════════════════════════════════════════


class TestTimeoutsAndRetries:
    def test_hung_render_times_out_alone(self, fast_config):
        config = fast_config.with_overrides(renderer=replace(fast_config.renderer, timeout=0.2))
        renderer = FakeRenderer(outputs(3), hang=["src1"])
        batch, manager = run_batch(renderer, config, sources(3))
        assert [r.stage for r in batch.results] == [None, "timeout", None]
        assert manager.pool.recycled == 1
        assert manager.pool.in_use == 0

    def test_transient_failures_recorded_as_warnings(self, fast_config):
        renderer = FakeRenderer(outputs(2), failures={"src0": [transient(), transient("launch failed")]})
        batch, _ = run_batch(renderer, fast_config, sources(2))
        assert batch.success
        assert len(batch.results[0].warnings) == 2
        assert "launch failed" in batch.results[0].warnings[1]
        assert batch.results[1].warnings == []

    def test_retries_exhausted(self, fast_config):
        renderer = FakeRenderer(outputs(1), failures={"src0": [transient()] * 5})
        batch, _ = run_batch(renderer, fast_config, sources(1))
        assert batch.results[0].stage == "render"
        assert renderer.calls.count("src0") == fast_config.renderer.retries + 1

    def test_failed_sandbox_recycle_fails_items_not_batch(self, fast_config):
        made = []

        def factory():
            if made:
                raise OSError("mkdtemp failed")
            made.append(SandboxHandle())
            return made[0]

        config = fast_config.with_overrides(renderer=replace(fast_config.renderer, timeout=0.2))
        renderer = FakeRenderer(outputs(3), hang=["src0"])
        manager = BatchManager(renderer, SandboxPool(1, factory), config)
        batch, _ = run_batch(renderer, config, sources(3), manager=manager)
        assert [r.stage for r in batch.results] == ["timeout", "render", "render"]
        assert "mkdtemp failed" in batch.results[1].message
        assert manager.pool.in_use == 0
        assert made[0].closed


# ═══════════════════════════════════════════════════════════
# Cancellation
# ═══════════════════════════════════════════════════════════


class TestCancellation:
    def test_cancel_before_start(self, fast_config):
        renderer = FakeRenderer(outputs(3))
        manager = BatchManager(renderer, config=fast_config)
        manager.cancel()
        batch, _ = run_batch(renderer, fast_config, sources(3), manager=manager)
        assert batch.cancelled == 3
        assert batch.failed == 0
        assert renderer.calls == []
        assert manager.started == 0

    def test_running_item_completes(self, fast_config):
        renderer = _CancelOnFirstRender(outputs(3))
        manager = BatchManager(renderer, config=fast_config)
        renderer.manager = manager
        batch, _ = run_batch(renderer, fast_config, sources(3), max_concurrency=1, manager=manager)
        assert batch.results[0].success
        assert [r.stage for r in batch.results[1:]] == ["cancelled", "cancelled"]
        assert (batch.succeeded, batch.failed, batch.cancelled) == (1, 0, 2)


# ═══════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════


class TestBatchResult:
    def test_counts_and_dict(self):
        source = DiagramSource("x", "flowchart", "x")
        results = [
            ConversionResult(index=0, name="a", success=True, document={"cells": []}),
            ConversionResult(index=1, name="b", stage="render", message="boom"),
            ConversionResult.cancelled(source, 2),
        ]
        batch = BatchResult(results=results, elapsed=1.23456)
        data = batch.to_dict()
        assert (data["succeeded"], data["failed"], data["cancelled"]) == (1, 1, 1)
        assert data["elapsed"] == 1.2346
        assert data["results"][1] == {
            "index": 1, "name": "b", "success": False, "diagram_type": "",
            "warnings": [], "elapsed": 0.0, "stage": "render", "message": "boom",
        }

    def test_sync_wrapper(self, fast_config):
        manager = BatchManager(FakeRenderer(outputs(2)), config=fast_config)
        batch = manager.convert_many_sync(sources(2))
        manager.close()
        assert batch.succeeded == 2

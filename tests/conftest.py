"""
tests/conftest.py

Shared fixtures.  SVG samples and the fake renderer live in samples.py.
"""

from __future__ import annotations

import pytest

from models import DiagramSource
from settings import BatchSettings, ConversionConfig, RendererSettings


@pytest.fixture
def config() -> ConversionConfig:
    return ConversionConfig()


@pytest.fixture
def fast_config() -> ConversionConfig:
    """Short timeout and backoff for async tests."""
    return ConversionConfig(
        renderer=RendererSettings(timeout=2.0, retries=2, retry_backoff=0.01, puppeteer_args=[]),
        batch=BatchSettings(max_concurrency=4, pool_size=2),
    )


@pytest.fixture
def flowchart_source() -> DiagramSource:
    return DiagramSource.from_text("flowchart LR\n  A[Start] -->|yes| B{OK?}", name="flow")

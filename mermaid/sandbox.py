"""
mermaid/sandbox.py

Rendering sandboxes and the bounded pool that hands them out.

A ``SandboxHandle`` owns a private temporary directory (input, output and
the puppeteer config live there), so concurrent mmdc runs never share
files.  ``SandboxPool`` keeps at most ``size`` handles alive; ``acquire``
suspends in FIFO order when every handle is in use.

Always use the scoped form::

    async with pool.handle() as handle:
        tree = await renderer.render(source, handle, timeout)

The handle is released on every exit path.  A handle that was marked
``discard`` (timeout) or whose scope was cancelled is recycled: closed and
replaced by a fresh one.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional

from debug_trace import trace
from errors import RenderFailure
from settings import RendererSettings

_handle_ids = itertools.count(1)


class SandboxHandle:
    """One rendering sandbox: a private work directory.

    Args:
        puppeteer_args: Chromium arguments written to ``puppeteer.json``.
        prefix: Temp directory prefix.
    """

    def __init__(self, puppeteer_args: Optional[List[str]] = None, prefix: str = "mmd2drawio_"):
        self.id = next(_handle_ids)
        self.path = Path(tempfile.mkdtemp(prefix=prefix))
        self.puppeteer_config = self.path / "puppeteer.json"
        self.puppeteer_config.write_text(
            json.dumps({"args": list(puppeteer_args or [])}),
            encoding="utf-8",
        )
        self.discard = False
        self.closed = False
        self.uses = 0

    def close(self) -> None:
        if not self.closed:
            shutil.rmtree(self.path, ignore_errors=True)
            self.closed = True

    def __repr__(self) -> str:
        return f"SandboxHandle(id={self.id}, path={str(self.path)!r})"


def handle_factory(settings: RendererSettings) -> Callable[[], SandboxHandle]:
    """Factory producing handles configured from renderer settings."""
    def _factory() -> SandboxHandle:
        return SandboxHandle(settings.puppeteer_args)
    return _factory


class SandboxPool:
    """Fixed-size pool of sandbox handles.

    Handles are created lazily up to *size*.  Waiters are served FIFO by
    an ``asyncio.Queue``.

    Args:
        size: Maximum number of live handles.
        factory: Zero-argument callable returning a new handle.
    """

    def __init__(self, size: int, factory: Optional[Callable[[], SandboxHandle]] = None):
        if size < 1:
            raise ValueError("Sandbox pool size must be at least 1")
        self.size = size
        self.factory = factory or SandboxHandle
        self._idle: Optional["asyncio.Queue[Optional[SandboxHandle]]"] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._live = 0
        self._created = 0
        self.in_use = 0
        self.recycled = 0

    @property
    def created(self) -> int:
        """Handles created so far, replacements included."""
        return self._created

    def _queue(self) -> "asyncio.Queue[Optional[SandboxHandle]]":
        # A queue belongs to one event loop; idle handles move to a new
        # queue when the pool is reused from another asyncio.run()
        loop = asyncio.get_running_loop()
        if self._idle is None or self._loop is not loop:
            idle = self._drain()
            self._idle = asyncio.Queue()
            self._loop = loop
            for h in idle:
                self._idle.put_nowait(h)
        return self._idle

    def _drain(self) -> List[Optional[SandboxHandle]]:
        handles: List[Optional[SandboxHandle]] = []
        if self._idle is not None:
            while not self._idle.empty():
                handles.append(self._idle.get_nowait())
        return handles

    def _create(self) -> SandboxHandle:
        handle = self.factory()
        self._created += 1
        return handle

    async def acquire(self) -> SandboxHandle:
        """Take an idle handle, create one, or wait for a release.

        Raises:
            RenderFailure: The factory could not create a handle.  The slot
                stays available so later callers retry the creation.
        """
        queue = self._queue()
        if queue.empty() and self._live < self.size:
            self._live += 1
            handle = None
        else:
            handle = await queue.get()
        if handle is None:
            try:
                handle = self._create()
            except Exception as exc:
                queue.put_nowait(None)
                trace(f"sandbox creation failed: {type(exc).__name__}: {exc}", "ERROR")
                raise RenderFailure(f"Could not create sandbox: {exc}", transient=False) from exc
            trace(f"sandbox {handle.id} created ({self._live}/{self.size})", "BATCH")
        self.in_use += 1
        handle.uses += 1
        return handle

    def release(self, handle: SandboxHandle, recycle: bool = False) -> None:
        """Return *handle* to the pool, or replace it when *recycle* is set.

        A replacement that cannot be created leaves an empty slot behind;
        the next ``acquire`` creates the handle instead.
        """
        self.in_use -= 1
        if recycle or handle.discard:
            handle.close()
            self.recycled += 1
            try:
                replacement: Optional[SandboxHandle] = self._create()
            except Exception as exc:
                replacement = None
                trace(f"sandbox {handle.id} recycle failed: {type(exc).__name__}: {exc}", "ERROR")
            else:
                trace(f"sandbox {handle.id} recycled -> {replacement.id}", "BATCH")
            self._queue().put_nowait(replacement)
            return
        self._queue().put_nowait(handle)

    @asynccontextmanager
    async def handle(self) -> AsyncIterator[SandboxHandle]:
        handle = await self.acquire()
        recycle = False
        try:
            yield handle
        except asyncio.CancelledError:
            recycle = True
            raise
        finally:
            self.release(handle, recycle=recycle)

    def close(self) -> None:
        """Close every idle handle.  Handles still in use are left alone."""
        for h in self._drain():
            if h is not None:
                h.close()
            self._live -= 1

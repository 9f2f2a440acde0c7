"""
Render Scheduler - Debounced, cancellable rendering of the buffer.

Rendering is done by an external collaborator (anything with an async
`render(code) -> str`). Each call to schedule() supersedes the previous
one, so only the most recent buffer is ever reported back.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    """Turns DSL text into a rendered document, raising on invalid input."""

    async def render(self, code: str) -> str:
        ...


class RenderScheduler:
    """
    Waits `delay` seconds of quiet, then renders and reports the outcome.

    `on_result` receives None on success or the failure message.
    """

    def __init__(
        self,
        renderer: Renderer,
        on_result: Callable[[Optional[str]], None],
        delay: float = 0.3,
    ):
        self._renderer = renderer
        self._on_result = on_result
        self._delay = delay
        self._task: Optional[asyncio.Task] = None
        self._last_output: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_output(self) -> Optional[str]:
        """Output of the most recent successful render."""
        return self._last_output

    def schedule(self, code: str) -> asyncio.Task:
        """Cancel any pending render and start a new delayed one. Needs a running loop."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(code))
        return self._task

    def cancel(self):
        if self.pending:
            self._task.cancel()
        self._task = None

    async def flush(self):
        """Wait for the pending render, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, code: str):
        await asyncio.sleep(self._delay)
        try:
            output = await self._renderer.render(code)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Render failed: %s", e)
            self._on_result(str(e))
            return

        self._last_output = output
        self._on_result(None)

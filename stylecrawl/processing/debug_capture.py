"""
Debug raw-page capture.

Saves fetched post pages to disk for selector tuning. Writes run in a
worker thread and never block or fail extraction.
"""

import asyncio
from pathlib import Path
from typing import Optional, Set, Union

from ..utils.logging import get_logger_for_component


class DebugCapture:
    """Fire-and-forget HTML dumps for the first few posts of a crawl."""

    def __init__(self, directory: Union[str, Path], max_posts: int = 3, enabled: bool = False):
        self.directory = Path(directory)
        self.max_posts = max_posts
        self.enabled = enabled
        self.logger = get_logger_for_component("debug_capture")
        self._tasks: Set[asyncio.Task] = set()

    def should_capture(self, post_index: int) -> bool:
        """``post_index`` is zero-based."""
        return self.enabled and post_index < self.max_posts

    def capture(self, post_index: int, candidate_index: int, html: str) -> Optional[asyncio.Task]:
        """Schedule a write of ``post-{i}-{j}.html`` (one-based in the name)."""
        if not self.should_capture(post_index):
            return None

        path = self.directory / f"post-{post_index + 1}-{candidate_index + 1}.html"
        task = asyncio.create_task(asyncio.to_thread(self._write, path, html))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self) -> None:
        """Wait for outstanding writes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    def _write(path: Path, html: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            self.logger.warning(f"Debug capture write failed: {error}")
        else:
            self.logger.debug(f"Saved debug HTML to {self.directory}")

"""Dev-mode file watcher: regenerate stubs when annotated sources change."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Iterable

from watchfiles import awatch

from luabridge.annotations import is_test_file
from luabridge.errors import LuaBridgeError

log = logging.getLogger(__name__)


def relevant_changes(changes: Iterable[tuple[Any, str]]) -> list[Path]:
    """Changed non-test Python sources, sorted and deduplicated."""
    paths = set()
    for _change_type, path_str in changes:
        path = Path(path_str)
        if path.suffix != ".py" or is_test_file(path):
            continue
        paths.add(path)
    return sorted(paths)


async def start_watcher(scan_dir: Path, regenerate: Callable[[list[Path]], Any]) -> asyncio.Task:
    """Start a watchfiles task calling ``regenerate(paths)`` after each batch of source changes."""

    async def _watch() -> None:
        log.info("Stub watcher started for %s", scan_dir)
        async for changes in awatch(scan_dir):
            paths = relevant_changes(changes)
            if not paths:
                continue
            log.debug("Change detected: %s", ", ".join(str(p) for p in paths))
            try:
                regenerate(paths)
            except LuaBridgeError:
                # A half-edited file must not stop the watcher.
                log.exception("Stub regeneration failed")

    return asyncio.create_task(_watch())

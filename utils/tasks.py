from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)

# starke Referenzen, sonst kann der GC laufende Tasks einsammeln
_background_tasks: set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"❌ Hintergrund-Task '{task.get_name()}' fehlgeschlagen: {exc!r}")


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: str = "background") -> asyncio.Task:
    """
    Startet eine Coroutine losgelöst vom Aufrufer.
    Fehler landen nur im Log und erreichen nie den Aufrufer.
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_tasks() -> list[asyncio.Task]:
    return [t for t in _background_tasks if not t.done()]


async def drain_background_tasks() -> None:
    """Wartet auf alle laufenden Hintergrund-Tasks (Shutdown, Tests)."""
    tasks = pending_tasks()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)

"""Planification différée (debounce) des propagations de traduction.

Une saisie sur un emplacement source programme une tâche asyncio qui attend une fenêtre de calme
avant d'exécuter la propagation. Une nouvelle saisie sur le même emplacement annule la tâche en
attente et la relance avec la dernière valeur.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Hashable

import structlog

log = structlog.get_logger(__name__)


class PropagationScheduler:
    """Tâches différées et annulables, indexées par clé d'emplacement."""

    def __init__(self, delay_s: float = 1.0) -> None:
        self.delay_s = delay_s
        self._pending: dict[Hashable, asyncio.Task] = {}

    @property
    def pending_keys(self) -> list[Hashable]:
        """Clés des tâches encore en attente ou en cours."""
        return [key for key, task in self._pending.items() if not task.done()]

    def schedule(self, key: Hashable, action: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Programme `action` après `delay_s`, en annulant la tâche en attente de même clé.

        Doit être appelé depuis une boucle asyncio active.
        """
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._run(key, action))
        self._pending[key] = task
        return task

    async def _run(self, key: Hashable, action: Callable[[], Awaitable[None]]) -> None:
        try:
            if self.delay_s > 0:
                await asyncio.sleep(self.delay_s)
            await action()
        except asyncio.CancelledError:
            log.debug("propagation_cancelled", key=str(key))
            raise
        except Exception:
            log.error("propagation_failed", key=str(key), exc_info=True)
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]

    def cancel(self, key: Hashable) -> bool:
        """Annule la tâche de clé `key` si elle existe encore."""
        task = self._pending.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Annule toutes les tâches dont la clé satisfait `predicate`."""
        keys = [key for key in self._pending if predicate(key)]
        return sum(1 for key in keys if self.cancel(key))

    def cancel_all(self) -> int:
        """Annule toutes les tâches en attente."""
        return self.cancel_where(lambda _key: True)

    async def drain(self) -> None:
        """Attend la fin de toutes les tâches programmées (y compris celles relancées)."""
        while self._pending:
            tasks = list(self._pending.values())
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

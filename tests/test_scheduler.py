"""
Tests pour le planificateur de propagations différées (debounce).

Ce module teste l'annulation/relance par clé, l'annulation sélective et l'isolation des erreurs.
"""

from __future__ import annotations

import asyncio

import pytest

from cvfields.domain.scheduler import PropagationScheduler

# Constantes pour éviter les erreurs PLR2004 (Magic values)
SHORT_DELAY_S = 0.01
EXPECTED_COUNT_2 = 2


@pytest.mark.asyncio
async def test_new_schedule_replaces_pending_task() -> None:
    """Teste qu'une nouvelle saisie annule la tâche en attente de même clé."""
    scheduler = PropagationScheduler(delay_s=SHORT_DELAY_S)
    ran: list[str] = []

    def action(label: str):
        async def _run() -> None:
            ran.append(label)

        return _run

    scheduler.schedule(("summary", 1), action("first"))
    scheduler.schedule(("summary", 1), action("second"))
    await scheduler.drain()

    assert ran == ["second"]
    assert scheduler.pending_keys == []


@pytest.mark.asyncio
async def test_distinct_keys_run_independently() -> None:
    """Teste que deux emplacements différents sont propagés tous les deux."""
    scheduler = PropagationScheduler(delay_s=0)
    ran: list[int] = []

    async def one() -> None:
        ran.append(1)

    async def two() -> None:
        ran.append(2)

    scheduler.schedule(("summary", 1), one)
    scheduler.schedule(("summary", 2), two)
    await scheduler.drain()

    assert sorted(ran) == [1, 2]


@pytest.mark.asyncio
async def test_cancel_prevents_execution() -> None:
    """Teste que cancel empêche l'exécution de l'action."""
    scheduler = PropagationScheduler(delay_s=SHORT_DELAY_S)
    ran: list[bool] = []

    async def action() -> None:
        ran.append(True)

    scheduler.schedule("k", action)
    assert scheduler.cancel("k") is True
    assert scheduler.cancel("k") is False
    await asyncio.sleep(SHORT_DELAY_S * 2)

    assert ran == []


@pytest.mark.asyncio
async def test_cancel_where_and_cancel_all() -> None:
    """Teste l'annulation sélective par prédicat puis globale."""
    scheduler = PropagationScheduler(delay_s=1.0)

    async def action() -> None:
        return None

    scheduler.schedule(("a", 1), action)
    scheduler.schedule(("a", 2), action)
    scheduler.schedule(("b", 1), action)

    assert scheduler.cancel_where(lambda key: key[0] == "a") == EXPECTED_COUNT_2
    assert scheduler.pending_keys == [("b", 1)]
    assert scheduler.cancel_all() == 1
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_failing_action_is_isolated() -> None:
    """Teste qu'une action en erreur est journalisée sans interrompre les autres."""
    scheduler = PropagationScheduler(delay_s=0)
    ran: list[str] = []

    async def broken() -> None:
        raise RuntimeError("boom")

    async def ok() -> None:
        ran.append("ok")

    scheduler.schedule("broken", broken)
    scheduler.schedule("ok", ok)
    await scheduler.drain()

    assert ran == ["ok"]
    assert scheduler.pending_keys == []


@pytest.mark.asyncio
async def test_drain_waits_for_running_action() -> None:
    """Teste que drain attend la fin d'une action en cours."""
    scheduler = PropagationScheduler(delay_s=0)
    done = asyncio.Event()

    async def slow() -> None:
        await asyncio.sleep(SHORT_DELAY_S)
        done.set()

    scheduler.schedule("slow", slow)
    await scheduler.drain()

    assert done.is_set()

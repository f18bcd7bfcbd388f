"""
Tests pour la session d'édition (hôte du moteur, du planificateur et du dépôt).

Ce module teste la propagation différée déclenchée par une saisie, le changement de langue de
travail, la validation des correspondances, la sauvegarde et le registre de sessions.
"""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest

from cvfields.domain import versions
from cvfields.domain.ai_matching import AIFieldMatcher
from cvfields.domain.default_structure import DEFAULT_FIELDS
from cvfields.domain.matching import Match
from cvfields.domain.scheduler import PropagationScheduler
from cvfields.domain.services import CVEditingSession, SessionRegistry
from cvfields.domain.translation_engine import TranslationEngine
from cvfields.infra.repositories import InMemoryUserRepo, StoreError
from tests.fakes import LANGUAGES, FakeLLM, FakeTranslator, make_field, make_user

# Constantes pour éviter les erreurs PLR2004 (Magic values)
VERSION_2 = 2
VERSION_3 = 3
EXPECTED_COUNT_3 = 3
SHORT_DELAY_S = 0.05


@pytest.mark.asyncio
async def test_working_language_edit_propagates_and_autosaves(
    session: CVEditingSession, translator: FakeTranslator, repo: InMemoryUserRepo
) -> None:
    """Teste qu'une saisie en langue de travail est propagée puis sauvegardée."""
    session.set_value("summary", "fr", 1, "Bonjour")
    await session.wait_idle()

    field = session.field("summary")
    assert versions.get_value(field, "en", 1) == "BONJOUR-en"
    assert versions.get_value(field, "de", 1) == "BONJOUR-de"
    assert len(translator.calls) == EXPECTED_COUNT_3
    stored = repo.get("u1")
    assert stored is not None
    assert stored["data"][0]["languageVersions"]
    assert session.dirty is False


@pytest.mark.asyncio
async def test_other_language_edit_does_not_propagate(
    session: CVEditingSession, translator: FakeTranslator
) -> None:
    """Teste qu'une saisie hors langue de travail ne déclenche aucune traduction."""
    session.set_value("summary", "en", 1, "Hello")
    await session.wait_idle()

    assert translator.calls == []
    assert session.scheduler.pending_keys == []


@pytest.mark.asyncio
async def test_rapid_edits_only_translate_last_value(
    engine: TranslationEngine, translator: FakeTranslator, repo: InMemoryUserRepo
) -> None:
    """Teste le debounce: seule la dernière valeur saisie est traduite."""
    session = CVEditingSession(
        make_user(), engine, PropagationScheduler(delay_s=SHORT_DELAY_S), repo
    )
    session.set_value("summary", "fr", 1, "Bon")
    session.set_value("summary", "fr", 1, "Bonjour")
    await session.wait_idle()

    assert {call[0] for call in translator.calls} == {"Bonjour"}
    assert versions.get_value(session.field("summary"), "es", 1) == "BONJOUR-es"


@pytest.mark.asyncio
async def test_change_working_language_drops_pending_propagation(
    engine: TranslationEngine, translator: FakeTranslator, repo: InMemoryUserRepo
) -> None:
    """Teste que le changement de langue annule les propagations et ne retraduit rien."""
    session = CVEditingSession(
        make_user(), engine, PropagationScheduler(delay_s=SHORT_DELAY_S), repo
    )
    session.set_value("summary", "fr", 1, "Bonjour")

    user = session.change_working_language("en")
    await session.wait_idle()

    assert translator.calls == []
    assert user.base_language == "en"
    assert session.working_language == "en"
    assert versions.get_value(session.field("summary"), "en", 1) == ""


@pytest.mark.asyncio
async def test_propagation_from_new_working_language(
    session: CVEditingSession, translator: FakeTranslator
) -> None:
    """Teste que la langue de travail devient la source des propagations suivantes."""
    session.change_working_language("en")
    session.set_value("summary", "en", 1, "Hello")
    await session.wait_idle()

    field = session.field("summary")
    assert versions.get_value(field, "fr", 1) == "HELLO-fr"
    assert {call[2] for call in translator.calls} == {"en"}


def test_unsupported_language_and_unknown_field(session: CVEditingSession) -> None:
    """Teste les erreurs de domaine: langue non supportée (ValueError), champ inconnu (KeyError)."""
    with pytest.raises(ValueError):
        session.set_value("summary", "xx", 1, "?")
    with pytest.raises(ValueError):
        session.change_working_language("xx")
    with pytest.raises(ValueError):
        session.set_value("summary", "fr", 4, "?")
    with pytest.raises(KeyError):
        session.set_value("missing", "fr", 1, "?")


def test_set_value_without_event_loop_does_not_schedule(session: CVEditingSession) -> None:
    """Teste qu'en contexte synchrone la valeur est écrite sans programmer de propagation."""
    field = session.set_value("summary", "fr", 1, "Bonjour")

    assert versions.get_value(field, "fr", 1) == "Bonjour"
    assert session.scheduler.pending_keys == []
    assert session.dirty is True


@pytest.mark.asyncio
async def test_clear_version_cancels_pending_propagation(
    engine: TranslationEngine, translator: FakeTranslator, repo: InMemoryUserRepo
) -> None:
    """Teste que l'effacement d'une version annule sa propagation en attente."""
    session = CVEditingSession(
        make_user(), engine, PropagationScheduler(delay_s=SHORT_DELAY_S), repo
    )
    session.set_value("summary", "fr", 1, "Bonjour")

    field = session.clear_version("summary", 1)
    await session.wait_idle()

    assert translator.calls == []
    assert versions.get_value(field, "fr", 1) == ""


@pytest.mark.asyncio
async def test_reset_to_auto_translation(session: CVEditingSession) -> None:
    """Teste la réinitialisation d'une saisie manuelle sur la traduction automatique."""
    session.set_value("summary", "fr", 1, "Bonjour")
    await session.wait_idle()
    session.set_value("summary", "es", 1, "Hola")

    field = await session.reset_to_auto_translation("summary", "es", 1)

    assert versions.get_value(field, "es", 1) == "BONJOUR-es"
    assert session.field("summary") == field


@pytest.mark.asyncio
async def test_commit_matches_writes_and_propagates(
    engine: TranslationEngine, repo: InMemoryUserRepo
) -> None:
    """Teste la validation des correspondances proposées."""
    user = make_user([make_field("prenom"), make_field("xp01entreprise")])
    session = CVEditingSession(user, engine, PropagationScheduler(delay_s=0), repo)
    matches = session.propose_matches(
        {"firstName": "Jean", "experience": [{"company": "ACME"}]}
    )

    session.commit_matches(matches)
    await session.wait_idle()

    assert versions.get_value(session.field("prenom"), "fr", 1) == "Jean"
    assert versions.get_value(session.field("xp01entreprise"), "en", 1) == "ACME-en"


@pytest.mark.asyncio
async def test_reset_keeps_edits_made_while_translating(repo: InMemoryUserRepo) -> None:
    """Teste qu'une saisie faite pendant la retraduction d'une réinitialisation est conservée."""
    gate = asyncio.Event()
    engine = TranslationEngine(FakeTranslator(gate=gate), LANGUAGES)
    field = versions.set_value(make_field("summary"), "fr", VERSION_2, "Bonjour")
    session = CVEditingSession(make_user([field]), engine, PropagationScheduler(delay_s=0), repo)

    reset = asyncio.create_task(session.reset_to_auto_translation("summary", "en", VERSION_2))
    await asyncio.sleep(0)
    session.set_value("summary", "de", VERSION_3, "Hallo")
    gate.set()
    field = await reset

    assert versions.get_value(field, "en", VERSION_2) == "BONJOUR-en"
    assert versions.get_value(field, "de", VERSION_3) == "Hallo"
    assert session.field("summary") == field
    marker = engine.marker("summary", "en", VERSION_2)
    assert marker is not None
    assert marker.source_text == "Bonjour"


def _match(field_id: str, value: str, language: str = "fr") -> Match:
    return Match(
        field_id=field_id,
        extracted_key="k",
        extracted_value=value,
        target_language=language,
        target_version=1,
    )


def test_commit_matches_unknown_field(session: CVEditingSession) -> None:
    """Teste qu'un champ inconnu dans le lot lève KeyError sans rien écrire."""
    with pytest.raises(KeyError):
        session.commit_matches([_match("summary", "Jean"), _match("missing", "v")])

    assert versions.get_value(session.field("summary"), "fr", 1) == ""
    assert session.dirty is False


def test_commit_matches_unsupported_language(session: CVEditingSession) -> None:
    """Teste qu'une langue non supportée dans le lot lève ValueError sans rien écrire."""
    with pytest.raises(ValueError):
        session.commit_matches([_match("summary", "Jean"), _match("summary", "v", "xx")])

    assert versions.get_value(session.field("summary"), "fr", 1) == ""
    assert session.dirty is False


@pytest.mark.asyncio
async def test_propose_matches_ai_without_matcher_uses_heuristic(
    engine: TranslationEngine, repo: InMemoryUserRepo
) -> None:
    """Teste la correspondance IA sans LLM configuré (heuristique)."""
    session = CVEditingSession(
        make_user([make_field("prenom")]), engine, PropagationScheduler(delay_s=0), repo
    )
    matches = await session.propose_matches_ai({"firstName": "Jean"})
    assert [m.field_id for m in matches] == ["prenom"]


def test_save_failure_keeps_edits_dirty(engine: TranslationEngine) -> None:
    """Teste qu'un échec du dépôt remonte StoreError et conserve les modifications."""
    repo = Mock()
    repo.save.side_effect = StoreError("down")
    session = CVEditingSession(make_user(), engine, PropagationScheduler(delay_s=0), repo)
    session.set_value("summary", "en", 1, "Hello")

    with pytest.raises(StoreError):
        session.save()

    assert session.dirty is True
    assert versions.get_value(session.field("summary"), "en", 1) == "Hello"

    repo.save.side_effect = None
    session.save()
    assert session.dirty is False


def test_add_field_uses_working_language(session: CVEditingSession) -> None:
    """Teste l'ajout d'un champ vide rattaché à la langue de travail."""
    session.change_working_language("es")
    field = session.add_field("Permis de conduire")

    assert field.base_language == "es"
    assert field.tag == "permisdeconduire"
    assert session.user.data[-1].id == field.id


@pytest.mark.asyncio
async def test_translate_all_fields(
    engine: TranslationEngine, translator: FakeTranslator, repo: InMemoryUserRepo
) -> None:
    """Teste la traduction de toutes les versions de tous les champs vers une langue."""
    first = versions.set_value(make_field("summary"), "fr", 1, "Bonjour")
    first = versions.set_value(first, "fr", VERSION_2, "Salut")
    second = versions.set_value(make_field("city"), "fr", 1, "Paris")
    session = CVEditingSession(
        make_user([first, second]), engine, PropagationScheduler(delay_s=0), repo
    )

    user = await session.translate_all_fields("de")

    assert versions.get_value(user.field("summary"), "de", VERSION_2) == "SALUT-de"
    assert versions.get_value(user.field("city"), "de", 1) == "PARIS-de"
    assert len(translator.calls) == EXPECTED_COUNT_3


@pytest.mark.asyncio
async def test_closed_session_applies_nothing(
    engine: TranslationEngine, translator: FakeTranslator, repo: InMemoryUserRepo
) -> None:
    """Teste qu'une session fermée n'applique plus aucune propagation."""
    session = CVEditingSession(
        make_user(), engine, PropagationScheduler(delay_s=SHORT_DELAY_S), repo
    )
    session.set_value("summary", "fr", 1, "Bonjour")
    session.close()
    session.set_value("summary", "fr", 1, "Salut")
    await session.wait_idle()

    assert translator.calls == []


def test_registry_create_and_load() -> None:
    """Teste la création d'un utilisateur (structure par défaut) et son rechargement."""
    repo = InMemoryUserRepo()
    registry = SessionRegistry(repo, FakeTranslator(), LANGUAGES, debounce_s=0)

    session = registry.create_user("jean@example.com", "Jean", "fr")
    user_id = session.user.id

    assert len(session.user.data) == len(DEFAULT_FIELDS)
    assert registry.get(user_id) is session

    registry.close(user_id)
    reloaded = registry.get(user_id)
    assert reloaded is not session
    assert reloaded.user.email == "jean@example.com"

    with pytest.raises(KeyError):
        registry.get("inconnu")
    with pytest.raises(ValueError):
        registry.create_user("jean@example.com")
    with pytest.raises(ValueError):
        registry.create_user("autre@example.com", base_language="xx")


@pytest.mark.asyncio
async def test_registry_matcher_factory() -> None:
    """Teste que le registre attache la correspondance IA fournie par la fabrique."""
    llm = FakeLLM(None)
    registry = SessionRegistry(
        InMemoryUserRepo(),
        FakeTranslator(),
        LANGUAGES,
        matcher_factory=lambda: AIFieldMatcher(llm),
    )
    session = registry.create_user("a@b.c")

    matches = await session.propose_matches_ai({"firstName": "Jean"})

    assert isinstance(session.matcher, AIFieldMatcher)
    assert [m.field_id for m in matches] == ["firstname"]

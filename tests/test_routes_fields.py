"""
Tests pour les routes d'édition des champs.

Ce module teste les endpoints `/users` (création, saisie, effacement, réinitialisation, langue
de travail, correspondance) et la traduction des erreurs de domaine en statuts HTTP.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cvfields.app.main import app
from cvfields.core.container import container
from cvfields.core.http_constants import (
    HTTP_BAD_REQUEST,
    HTTP_CREATED,
    HTTP_NOT_FOUND,
    HTTP_OK,
    HTTP_SERVICE_UNAVAILABLE,
)
from cvfields.domain.default_structure import DEFAULT_FIELDS
from cvfields.domain.services import SessionRegistry
from cvfields.infra.repositories import InMemoryUserRepo, StoreError
from tests.fakes import LANGUAGES, FakeTranslator

HTTP_UNPROCESSABLE = 422


@pytest.fixture
def registry(monkeypatch) -> SessionRegistry:
    """Registre de sessions isolé (dépôt mémoire, traducteur factice, long debounce)."""
    registry = SessionRegistry(
        InMemoryUserRepo(), FakeTranslator(), LANGUAGES, debounce_s=60.0
    )
    monkeypatch.setattr(container, "sessions", registry)
    yield registry
    registry.close_all()


@pytest.fixture
def client(registry: SessionRegistry) -> TestClient:
    """Client HTTP sur l'application."""
    return TestClient(app)


def _create_user(client: TestClient) -> str:
    r = client.post("/users", json={"email": "jean@example.com", "name": "Jean"})
    assert r.status_code == HTTP_CREATED
    return r.json()["id"]


def test_create_and_get_user(client: TestClient) -> None:
    """Teste la création avec la structure par défaut puis la lecture."""
    user_id = _create_user(client)

    r = client.get(f"/users/{user_id}")
    assert r.status_code == HTTP_OK
    body = r.json()
    assert body["workingLanguage"] == "fr"
    assert len(body["user"]["data"]) == len(DEFAULT_FIELDS)
    assert body["user"]["baseLanguage"] == "fr"


def test_unknown_user_is_404(client: TestClient) -> None:
    """Teste qu'un utilisateur inconnu renvoie 404."""
    assert client.get("/users/inconnu").status_code == HTTP_NOT_FOUND


def test_set_value_and_clear_version(client: TestClient) -> None:
    """Teste la saisie d'une valeur puis l'effacement de sa version."""
    user_id = _create_user(client)

    r = client.put(
        f"/users/{user_id}/fields/summary/value",
        json={"language": "en", "version": 2, "value": "Senior developer"},
    )
    assert r.status_code == HTTP_OK
    assert r.json()["languageVersions"][0]["value"] == "Senior developer"

    r = client.delete(f"/users/{user_id}/fields/summary/versions/2")
    assert r.status_code == HTTP_OK
    assert r.json()["languageVersions"] == []


def test_domain_errors_map_to_http(client: TestClient) -> None:
    """Teste la traduction des erreurs: champ inconnu 404, langue 400, version 422/400."""
    user_id = _create_user(client)
    url = f"/users/{user_id}/fields"

    r = client.put(f"{url}/missing/value", json={"language": "fr", "version": 1, "value": "x"})
    assert r.status_code == HTTP_NOT_FOUND
    r = client.put(f"{url}/summary/value", json={"language": "xx", "version": 1, "value": "x"})
    assert r.status_code == HTTP_BAD_REQUEST
    r = client.put(f"{url}/summary/value", json={"language": "fr", "version": 5, "value": "x"})
    assert r.status_code == HTTP_UNPROCESSABLE
    assert client.delete(f"{url}/summary/versions/9").status_code == HTTP_BAD_REQUEST


def test_working_language_route(client: TestClient) -> None:
    """Teste le changement de langue de travail."""
    user_id = _create_user(client)

    r = client.put(f"/users/{user_id}/working-language", json={"language": "en"})

    assert r.status_code == HTTP_OK
    assert r.json()["workingLanguage"] == "en"
    assert r.json()["user"]["baseLanguage"] == "en"


def test_reset_route_translates_from_working_language(
    client: TestClient, registry: SessionRegistry
) -> None:
    """Teste la réinitialisation d'un emplacement sans marqueur (traduction de la source)."""
    user_id = _create_user(client)
    registry.get(user_id).set_value("summary", "fr", 1, "Bonjour")

    r = client.post(
        f"/users/{user_id}/fields/summary/reset", json={"language": "de", "version": 1}
    )

    assert r.status_code == HTTP_OK
    values = {(v["language"], v["version"]): v["value"] for v in r.json()["languageVersions"]}
    assert values[("de", 1)] == "BONJOUR-de"


def test_propose_then_commit_matches(client: TestClient) -> None:
    """Teste le parcours de correspondance: proposition puis validation."""
    user_id = _create_user(client)
    extracted = {"firstName": "Jean", "email": "jean@example.com", "skills": ["Python", "SQL"]}

    r = client.post(f"/users/{user_id}/matches/propose", json={"extracted": extracted})
    assert r.status_code == HTTP_OK
    matches = r.json()["matches"]
    by_field = {m["fieldId"]: m for m in matches}
    assert by_field["firstname"]["extractedValue"] == "Jean"
    assert by_field["firstname"]["targetVersion"] == 1
    assert by_field["skills"]["extractedValue"] == "Python, SQL"

    r = client.post(f"/users/{user_id}/matches/commit", json={"matches": matches})
    assert r.status_code == HTTP_OK
    firstname = next(f for f in r.json()["data"] if f["id"] == "firstname")
    assert firstname["aiVersions"][0]["value"] == "Jean"


def test_propose_rejects_non_object_payload(client: TestClient) -> None:
    """Teste la validation de la charge extraite."""
    user_id = _create_user(client)
    r = client.post(f"/users/{user_id}/matches/propose", json={"extracted": ["a"]})
    assert r.status_code == HTTP_UNPROCESSABLE


def test_add_field_and_translate_all(client: TestClient) -> None:
    """Teste l'ajout d'un champ puis la traduction de tous les champs."""
    user_id = _create_user(client)
    r = client.post(f"/users/{user_id}/fields", json={"name": "Permis", "type": "text"})
    assert r.status_code == HTTP_CREATED
    field_id = r.json()["id"]

    client.put(
        f"/users/{user_id}/fields/{field_id}/value",
        json={"language": "fr", "version": 1, "value": "Permis B"},
    )
    r = client.post(f"/users/{user_id}/translate-all", json={"targetLanguage": "es"})

    assert r.status_code == HTTP_OK
    field = next(f for f in r.json()["data"] if f["id"] == field_id)
    assert field["languageVersions"][0]["value"] == "PERMIS B-es"


def test_store_failure_is_503_and_edits_are_kept(
    client: TestClient, registry: SessionRegistry
) -> None:
    """Teste qu'une panne du dépôt renvoie 503 sans perdre la saisie en session."""
    user_id = _create_user(client)

    with patch.object(registry.repo, "save", side_effect=StoreError("down")):
        r = client.put(
            f"/users/{user_id}/fields/summary/value",
            json={"language": "en", "version": 1, "value": "Hello"},
        )
    assert r.status_code == HTTP_SERVICE_UNAVAILABLE

    session = registry.get(user_id)
    assert session.dirty is True
    r = client.post(f"/users/{user_id}/save")
    assert r.status_code == HTTP_OK
    assert r.json()["dirty"] is False
    stored = registry.repo.get(user_id)
    summary = next(f for f in stored["data"] if f["id"] == "summary")
    assert summary["languageVersions"][0]["value"] == "Hello"

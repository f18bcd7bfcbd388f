"""
Routes d'édition des champs de CV: valeurs, versions, langue de travail et correspondance.

Ce module regroupe les endpoints `/users` qui pilotent la session d'édition d'un utilisateur.
Chaque mutation est persistée immédiatement; un dépôt indisponible renvoie 503 et les
modifications restent dans la session.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException

from cvfields.api.schemas import (
    AddFieldRequest,
    CommitMatchesRequest,
    CreateUserRequest,
    MatchesResponse,
    ProposeMatchesRequest,
    SetValueRequest,
    SlotRequest,
    TranslateAllRequest,
    WorkingLanguageRequest,
)
from cvfields.core.container import container
from cvfields.core.http_constants import (
    HTTP_BAD_REQUEST,
    HTTP_CREATED,
    HTTP_NOT_FOUND,
    HTTP_SERVICE_UNAVAILABLE,
)
from cvfields.domain.services import CVEditingSession
from cvfields.infra.repositories import StoreError

router = APIRouter(prefix="/users", tags=["fields"])
log = structlog.get_logger(__name__)


@contextmanager
def domain_errors() -> Iterator[None]:
    """Traduit les erreurs du domaine en réponses HTTP."""
    try:
        yield
    except KeyError as err:
        raise HTTPException(status_code=HTTP_NOT_FOUND, detail=str(err.args[0])) from err
    except StoreError as err:
        log.error("store_unavailable", error=str(err))
        raise HTTPException(
            status_code=HTTP_SERVICE_UNAVAILABLE, detail="store_unavailable"
        ) from err
    except ValueError as err:
        raise HTTPException(status_code=HTTP_BAD_REQUEST, detail=str(err)) from err


def _session(user_id: str) -> CVEditingSession:
    with domain_errors():
        return container.sessions.get(user_id)


def _field_out(session: CVEditingSession, field_id: str) -> dict[str, Any]:
    return session.field(field_id).model_dump(mode="json", by_alias=True)


@router.post("", status_code=HTTP_CREATED)
async def create_user(payload: CreateUserRequest):
    """Crée un utilisateur avec la structure par défaut et renvoie son enregistrement."""
    with domain_errors():
        session = container.sessions.create_user(
            payload.email, payload.name, payload.base_language
        )
    return session.user.to_record()


@router.get("/{user_id}")
async def get_user(user_id: str):
    """Renvoie l'utilisateur courant (instantané de session) et sa langue de travail."""
    session = _session(user_id)
    return {"user": session.user.to_record(), "workingLanguage": session.working_language}


@router.post("/{user_id}/fields", status_code=HTTP_CREATED)
async def add_field(user_id: str, payload: AddFieldRequest):
    """Ajoute un champ vide dans la langue de travail."""
    session = _session(user_id)
    with domain_errors():
        field = session.add_field(payload.name, payload.tag, payload.type, payload.metadata)
        session.save()
    return field.model_dump(mode="json", by_alias=True)


@router.put("/{user_id}/fields/{field_id}/value")
async def set_value(user_id: str, field_id: str, payload: SetValueRequest):
    """Écrit une valeur; la propagation des traductions est différée."""
    session = _session(user_id)
    with domain_errors():
        session.set_value(field_id, payload.language, payload.version, payload.value)
        session.save()
        return _field_out(session, field_id)


@router.delete("/{user_id}/fields/{field_id}/versions/{version}")
async def clear_version(user_id: str, field_id: str, version: int):
    """Efface une version du champ dans toutes les langues."""
    session = _session(user_id)
    with domain_errors():
        session.clear_version(field_id, version)
        session.save()
        return _field_out(session, field_id)


@router.post("/{user_id}/fields/{field_id}/reset")
async def reset_to_auto_translation(user_id: str, field_id: str, payload: SlotRequest):
    """Remet un emplacement sur sa traduction automatique."""
    session = _session(user_id)
    with domain_errors():
        await session.reset_to_auto_translation(field_id, payload.language, payload.version)
        session.save()
        return _field_out(session, field_id)


@router.put("/{user_id}/working-language")
async def change_working_language(user_id: str, payload: WorkingLanguageRequest):
    """Change la langue de travail (sans retraduction)."""
    session = _session(user_id)
    with domain_errors():
        user = session.change_working_language(payload.language)
        session.save()
    return {"user": user.to_record(), "workingLanguage": session.working_language}


@router.post("/{user_id}/matches/propose", response_model=MatchesResponse)
async def propose_matches(user_id: str, payload: ProposeMatchesRequest):
    """Propose des correspondances pour des données extraites (aucune écriture)."""
    session = _session(user_id)
    with domain_errors():
        if payload.use_ai:
            matches = await session.propose_matches_ai(payload.extracted)
        else:
            matches = session.propose_matches(payload.extracted)
    return MatchesResponse(matches=matches)


@router.post("/{user_id}/matches/commit")
async def commit_matches(user_id: str, payload: CommitMatchesRequest):
    """Applique les correspondances confirmées puis persiste l'utilisateur."""
    session = _session(user_id)
    with domain_errors():
        user = session.commit_matches(payload.matches)
        session.save()
    return user.to_record()


@router.post("/{user_id}/translate-all")
async def translate_all(user_id: str, payload: TranslateAllRequest):
    """Traduit toutes les versions de tous les champs vers une langue cible."""
    session = _session(user_id)
    with domain_errors():
        user = await session.translate_all_fields(payload.target_language)
        session.save()
    return user.to_record()


@router.post("/{user_id}/save")
async def save(user_id: str):
    """Relance la sauvegarde (après une indisponibilité du dépôt)."""
    session = _session(user_id)
    with domain_errors():
        user = session.save()
    return {"user": user.to_record(), "dirty": session.dirty}

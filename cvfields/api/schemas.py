# Schémas Pydantic exposés par l'API (requêtes et réponses).

from typing import Any

from pydantic import BaseModel, Field

from cvfields.domain.entities import CamelModel, FieldType, Version
from cvfields.domain.matching import Match


class CreateUserRequest(CamelModel):
    """Création d'un utilisateur avec la structure de champs par défaut.

    Champs:
    - email: str
    - name: str (nom affiché)
    - base_language: str | None (langue de travail initiale, défaut: configuration)
    """

    email: str
    name: str = ""
    base_language: str | None = None


class SetValueRequest(CamelModel):
    """Saisie d'une valeur en (langue, version)."""

    language: str
    version: Version
    value: str


class SlotRequest(CamelModel):
    """Désignation d'un emplacement (langue, version)."""

    language: str
    version: Version


class WorkingLanguageRequest(CamelModel):
    """Nouvelle langue de travail."""

    language: str


class AddFieldRequest(CamelModel):
    """Ajout d'un champ vide."""

    name: str = Field(min_length=1)
    tag: str | None = None
    type: FieldType = "text"
    metadata: dict[str, Any] | None = None


class ProposeMatchesRequest(CamelModel):
    """Données extraites à rapprocher des champs.

    Champs:
    - extracted: dict (résultat brut de l'extraction)
    - use_ai: bool (correspondance par LLM si disponible)
    """

    extracted: dict[str, Any]
    use_ai: bool = False


class MatchesResponse(BaseModel):
    """Propositions de correspondance (non appliquées)."""

    matches: list[Match]


class CommitMatchesRequest(CamelModel):
    """Propositions confirmées (éventuellement éditées) par l'utilisateur."""

    matches: list[Match]


class TranslateAllRequest(CamelModel):
    """Langue cible de la traduction de tous les champs."""

    target_language: str

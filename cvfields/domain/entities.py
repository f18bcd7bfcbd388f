"""
Entités du domaine métier.

Ce module définit les modèles de données d'un CV structuré: champs, versions par langue et
utilisateur. La forme sérialisée (camelCase) est celle persistée dans le dépôt utilisateurs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

FieldType = Literal["text", "number", "image", "video", "date", "url"]
Version = Literal[1, 2, 3]

VERSIONS: tuple[int, ...] = (1, 2, 3)

log = structlog.get_logger(__name__)


def utcnow_iso() -> str:
    """Horodatage ISO-8601 (UTC) utilisé pour createdAt/updatedAt."""
    return datetime.now(UTC).isoformat()


class CamelModel(BaseModel):
    """Base commune: alias camelCase en sortie, noms Python acceptés en entrée."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AIVersion(CamelModel):
    """Contenu d'une version (1, 2 ou 3) dans la langue de base du champ."""

    version: Version
    value: str = ""
    created_at: str = Field(default_factory=utcnow_iso)
    prompt: str | None = None


class LanguageVersion(CamelModel):
    """Contenu d'une version (1, 2 ou 3) traduit dans une autre langue."""

    language: str
    version: Version
    value: str = ""
    created_at: str = Field(default_factory=utcnow_iso)
    prompt: str | None = None


class UserDataField(CamelModel):
    """Champ de CV: identité stable, tag de substitution et contenus versionnés."""

    id: str
    name: str
    tag: str
    type: FieldType = "text"
    base_language: str = "fr"
    ai_versions: list[AIVersion] = Field(default_factory=list)
    language_versions: list[LanguageVersion] = Field(default_factory=list)
    created_at: str = Field(default_factory=utcnow_iso)
    updated_at: str = Field(default_factory=utcnow_iso)
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _dedupe_versions(self) -> UserDataField:
        """Supprime les doublons de version au chargement (la dernière occurrence gagne)."""
        ai_by_version: dict[int, AIVersion] = {}
        for entry in self.ai_versions:
            ai_by_version[entry.version] = entry
        lang_by_slot: dict[tuple[str, int], LanguageVersion] = {}
        for entry in self.language_versions:
            lang_by_slot[(entry.language, entry.version)] = entry

        if len(ai_by_version) != len(self.ai_versions) or len(lang_by_slot) != len(
            self.language_versions
        ):
            log.warning(
                "field_duplicate_versions_dropped",
                field_id=self.id,
                ai_before=len(self.ai_versions),
                ai_after=len(ai_by_version),
                lang_before=len(self.language_versions),
                lang_after=len(lang_by_slot),
            )
            self.ai_versions = sorted(ai_by_version.values(), key=lambda v: v.version)
            self.language_versions = sorted(
                lang_by_slot.values(), key=lambda v: (v.language, v.version)
            )
        return self


class User(CamelModel):
    """Utilisateur: unité de persistance (remplacement complet à chaque sauvegarde)."""

    id: str
    email: str = ""
    name: str = ""
    base_language: str = "fr"
    data: list[UserDataField] = Field(default_factory=list)
    created_at: str = Field(default_factory=utcnow_iso)
    updated_at: str = Field(default_factory=utcnow_iso)

    def field(self, field_id: str) -> UserDataField:
        """Retourne le champ `field_id` ou lève KeyError s'il est absent."""
        for item in self.data:
            if item.id == field_id:
                return item
        raise KeyError("field_not_found")

    def with_field(self, updated: UserDataField) -> User:
        """Copie de l'utilisateur où le champ de même id est remplacé (ordre conservé)."""
        data = [updated if item.id == updated.id else item for item in self.data]
        return self.model_copy(update={"data": data})

    def to_record(self) -> dict[str, Any]:
        """Forme JSON persistée (camelCase)."""
        return self.model_dump(mode="json", by_alias=True)

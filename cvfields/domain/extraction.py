"""Validation du résultat d'extraction d'un CV.

Le résultat brut (JSON du parseur/IA) est converti en une union étiquetée:
- entrées scalaires (clé -> texte),
- liste d'expériences, liste de formations,
- liste de compétences (chaînes),
- liste de langues ({language, level}).

Les éléments de tableau mal formés sont ignorés (journalisés), jamais fatals.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

log = structlog.get_logger(__name__)

MAX_ARRAY_ENTRIES = 10

EXPERIENCE_KEYS = frozenset({"experience", "experiences", "workexperience"})
EDUCATION_KEYS = frozenset({"education", "educations", "formation", "formations"})
SKILLS_KEYS = frozenset({"skills", "competences"})
LANGUAGES_KEYS = frozenset({"languages", "langues"})


class ExtractionError(ValueError):
    """Charge utile d'extraction inexploitable (forme racine invalide)."""


def normalize_identifier(value: str) -> str:
    """Minuscules, accents repliés, caractères non alphanumériques supprimés."""
    folded = unicodedata.normalize("NFKD", str(value))
    ascii_only = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return "".join(ch for ch in ascii_only.lower() if ch.isascii() and ch.isalnum())


def scalar_to_text(value: Any) -> str:
    """Texte d'une valeur scalaire; les listes de scalaires sont jointes par ', '."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list | tuple):
        parts = [scalar_to_text(v) for v in value if not isinstance(v, Mapping)]
        return ", ".join(p for p in parts if p)
    if isinstance(value, Mapping):
        return ""
    return str(value).strip()


class _Entry(BaseModel):
    """Base des éléments de tableau: champs texte optionnels, clés inconnues ignorées."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _to_text(cls, value: Any) -> str:
        return scalar_to_text(value)


class ExperienceEntry(_Entry):
    """Expérience professionnelle extraite."""

    company: str = ""
    title: str = ""
    start_date: str = Field("", validation_alias=AliasChoices("startDate", "start_date"))
    end_date: str = Field("", validation_alias=AliasChoices("endDate", "end_date"))
    description: str = ""
    mission: str = ""
    results: str = ""


class EducationEntry(_Entry):
    """Formation extraite."""

    degree: str = ""
    school: str = ""
    start_date: str = Field("", validation_alias=AliasChoices("startDate", "start_date"))
    end_date: str = Field("", validation_alias=AliasChoices("endDate", "end_date"))
    description: str = ""


class LanguageEntry(_Entry):
    """Langue parlée et niveau."""

    language: str = ""
    level: str = ""


@dataclass
class Extraction:
    """Résultat d'extraction validé."""

    scalars: list[tuple[str, str]] = field(default_factory=list)
    experience: list[ExperienceEntry] = field(default_factory=list)
    education: list[EducationEntry] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    languages: list[LanguageEntry] = field(default_factory=list)


def _parse_entries(key: str, raw: Any, model: type[_Entry]) -> list[Any]:
    entries: list[Any] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, Mapping):
            log.warning("extraction_item_skipped", key=key, index=idx, reason="not_an_object")
            continue
        try:
            entries.append(model.model_validate(dict(item)))
        except ValidationError:
            log.warning("extraction_item_skipped", key=key, index=idx, reason="invalid_shape")
    return entries


def parse_extraction(raw: Any) -> Extraction:
    """Valide un résultat d'extraction brut et le range dans l'union étiquetée.

    Raises:
        ExtractionError: si la racine n'est pas un objet clé/valeur.
    """
    if not isinstance(raw, Mapping):
        raise ExtractionError("extraction_payload_not_a_mapping")

    result = Extraction()
    for key, value in raw.items():
        if value is None:
            continue
        norm = normalize_identifier(key)
        is_object_list = isinstance(value, list) and any(isinstance(v, Mapping) for v in value)
        if norm in EXPERIENCE_KEYS and is_object_list:
            result.experience = _parse_entries(key, value, ExperienceEntry)
        elif norm in EDUCATION_KEYS and is_object_list:
            result.education = _parse_entries(key, value, EducationEntry)
        elif norm in LANGUAGES_KEYS and is_object_list:
            result.languages = _parse_entries(key, value, LanguageEntry)
        elif norm in SKILLS_KEYS and isinstance(value, list):
            result.skills = [s for s in (scalar_to_text(v) for v in value) if s]
        elif isinstance(value, Mapping) or is_object_list:
            log.debug("extraction_key_ignored", key=key, reason="unsupported_shape")
        else:
            text = scalar_to_text(value)
            if text:
                result.scalars.append((str(key), text))
    return result

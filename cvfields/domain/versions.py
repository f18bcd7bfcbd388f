"""Résolution et écriture des emplacements (langue, version) d'un champ.

Un champ stocke ses contenus dans deux collections:
- `ai_versions` pour la langue de base du champ,
- `language_versions` pour toutes les autres langues.

Les fonctions de ce module ne modifient jamais le champ reçu: elles renvoient une copie mise à
jour, afin que les lecteurs concurrents gardent un instantané cohérent.
"""

from __future__ import annotations

from cvfields.domain.entities import (
    VERSIONS,
    AIVersion,
    LanguageVersion,
    UserDataField,
    utcnow_iso,
)


def _check_version(version: int) -> None:
    if version not in VERSIONS:
        raise ValueError(f"invalid_version:{version}")


def get_value(field: UserDataField, language: str, version: int) -> str:
    """Valeur stockée en (langue, version), chaîne vide si l'emplacement est vide."""
    if language == field.base_language:
        for entry in field.ai_versions:
            if entry.version == version:
                return entry.value or ""
        return ""
    for entry in field.language_versions:
        if entry.language == language and entry.version == version:
            return entry.value or ""
    return ""


def values_for_language(field: UserDataField, language: str) -> dict[int, str]:
    """Valeurs des trois versions pour une langue (vides incluses)."""
    return {version: get_value(field, language, version) for version in VERSIONS}


def available_version(field: UserDataField, language: str) -> int:
    """Premier emplacement vide (1, 2 puis 3) pour la langue; 1 si tout est rempli."""
    for version in VERSIONS:
        if not get_value(field, language, version):
            return version
    return 1


def set_value(
    field: UserDataField, language: str, version: int, text: str
) -> UserDataField:
    """Écrit `text` en (langue, version) et renvoie le champ mis à jour."""
    _check_version(version)
    now = utcnow_iso()
    if language == field.base_language:
        entries = [e for e in field.ai_versions if e.version != version]
        entries.append(AIVersion(version=version, value=text, created_at=now))
        entries.sort(key=lambda e: e.version)
        return field.model_copy(update={"ai_versions": entries, "updated_at": now})

    lang_entries = [
        e
        for e in field.language_versions
        if not (e.language == language and e.version == version)
    ]
    lang_entries.append(
        LanguageVersion(language=language, version=version, value=text, created_at=now)
    )
    lang_entries.sort(key=lambda e: (e.language, e.version))
    return field.model_copy(update={"language_versions": lang_entries, "updated_at": now})


def clear_version(field: UserDataField, version: int) -> UserDataField:
    """Efface la version dans toutes les langues (base et traductions)."""
    _check_version(version)
    return field.model_copy(
        update={
            "ai_versions": [e for e in field.ai_versions if e.version != version],
            "language_versions": [
                e for e in field.language_versions if e.version != version
            ],
            "updated_at": utcnow_iso(),
        }
    )


def stored_slots(field: UserDataField) -> list[tuple[str, int, str]]:
    """Liste (langue, version, valeur) de tous les emplacements non vides du champ."""
    slots = [(field.base_language, e.version, e.value) for e in field.ai_versions if e.value]
    slots.extend((e.language, e.version, e.value) for e in field.language_versions if e.value)
    return slots

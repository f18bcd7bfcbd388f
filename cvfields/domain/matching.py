"""Correspondance automatique entre données extraites d'un CV et champs utilisateur.

Démarche
--------
- Chaque champ est décrit par ses identifiants normalisés (`tag`, `name`, `id`) enrichis d'une
  table de synonymes (identité, contact, poste, résumé, langues).
- Une clé scalaire extraite est rapprochée en deux passes. Une égalité exacte sur n'importe quel
  champ l'emporte toujours sur une inclusion, même si le champ à inclusion vient avant dans la
  liste. Seulement si aucun champ n'est égal, le premier champ dont un identifiant contient la
  clé ou y est contenu est retenu; l'inclusion exige au moins 3 caractères de part et d'autre.
- Les tableaux (expériences, formations, langues) sont rapprochés par position: l'expérience N
  vers les champs préfixés `xpNN`, la formation N vers `forNN`; le sous-champ est reconnu par mot
  clé dans le suffixe.
- Une valeur déjà présente dans le champ (même langue, casse et espaces ignorés) n'est pas
  reproposée.
- La version cible est la première version libre au moment de la proposition; elle n'est pas
  recalculée d'une proposition à l'autre dans un même lot.

La correspondance est une fonction pure: rien n'est écrit avant confirmation explicite.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from cvfields.domain import versions
from cvfields.domain.entities import CamelModel, UserDataField, Version
from cvfields.domain.extraction import (
    MAX_ARRAY_ENTRIES,
    EducationEntry,
    ExperienceEntry,
    Extraction,
    normalize_identifier,
    parse_extraction,
)

MIN_SUBSTRING_LEN = 3

# Concept -> synonymes (déjà sous forme normalisée ou normalisables)
FIELD_SYNONYMS: dict[str, list[str]] = {
    "prenom": ["firstname", "prenom", "first_name", "givenname", "given name"],
    "nom": ["lastname", "nom", "surname", "name", "last_name", "familyname", "family name"],
    "mail": ["email", "mail", "courriel", "e-mail", "emailaddress", "email address"],
    "telephone": ["phone", "telephone", "tel", "mobile", "phone_number", "phonenumber"],
    "adresse01": ["addressline1", "adresse", "street", "rue", "address", "address1"],
    "adresse02": ["addressline2", "adresse2", "address2"],
    "codepostal": ["postalcode", "codepostal", "zip", "zipcode", "postal_code", "cp"],
    "ville": ["city", "ville", "town"],
    "pays": ["country", "pays", "nation"],
    "region": ["region", "state", "province", "departement"],
    "datedenaissance": [
        "birthdate",
        "datedenaissance",
        "dob",
        "birth_date",
        "dateofbirth",
        "date of birth",
    ],
    "lieudenaissance": ["birthplace", "lieudenaissance", "birth_place", "placeofbirth"],
    "posterecherche": [
        "jobtitle",
        "posterecherche",
        "position",
        "job_title",
        "title",
        "poste",
        "fonction",
    ],
    "resumeprofessionnel": [
        "summary",
        "resume",
        "resumeprofessionnel",
        "profil",
        "profile",
        "about",
        "aboutme",
        "presentation",
    ],
    "competences": ["skills", "competences", "competence", "technicalskills", "hardskills"],
    "langue01": ["languages", "langue", "language", "lang", "langues", "language01"],
    "niveaulangue01": [
        "languagelevel",
        "niveaulangue",
        "language_level",
        "level",
        "languagelevel01",
    ],
}

_NORMALIZED_SYNONYMS: dict[str, frozenset[str]] = {
    concept: frozenset({normalize_identifier(concept)} | {normalize_identifier(s) for s in syns})
    for concept, syns in FIELD_SYNONYMS.items()
}

EXPERIENCE_PREFIXES = ("xp",)
EDUCATION_PREFIXES = ("for", "edu")

# (mots clés du suffixe, attributs de l'entrée lus dans l'ordre)
EXPERIENCE_SUFFIX_RULES: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("entreprise", "company", "employer", "employeur", "societe"), ("company",)),
    (("poste", "title", "role", "fonction"), ("title",)),
    (("datedebut", "startdate", "debut"), ("start_date",)),
    (("datefin", "enddate"), ("end_date",)),
    (("mission", "description"), ("description", "mission")),
    (("resultats", "results", "resultat"), ("results",)),
]

EDUCATION_SUFFIX_RULES: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("diplome", "degree"), ("degree",)),
    (("ecole", "school", "etablissement", "universite"), ("school",)),
    (("datedebut", "startdate", "debut"), ("start_date",)),
    (("datefin", "enddate"), ("end_date",)),
    (("description",), ("description",)),
]

_EXTRACTED_KEY_NAMES = {"start_date": "startDate", "end_date": "endDate"}


class Match(CamelModel):
    """Proposition d'affectation d'une valeur extraite à (champ, langue, version)."""

    field_id: str
    extracted_key: str
    extracted_value: str
    target_language: str
    target_version: Version
    confidence: float | None = None
    reason: str | None = None


def field_identifiers(field: UserDataField) -> frozenset[str]:
    """Identifiants normalisés du champ, enrichis des synonymes de son concept."""
    own = {normalize_identifier(v) for v in (field.tag, field.name, field.id)}
    own.discard("")
    expanded = set(own)
    for synonyms in _NORMALIZED_SYNONYMS.values():
        if own & synonyms:
            expanded |= synonyms
    return frozenset(expanded)


def value_exists_in_field(field: UserDataField, value: str, language: str) -> bool:
    """Vrai si `value` (espaces et casse ignorés) est déjà stockée pour cette langue."""
    needle = value.strip().lower()
    return any(
        stored.strip().lower() == needle
        for stored in versions.values_for_language(field, language).values()
        if stored
    )


def _contains(a: str, b: str) -> bool:
    if len(a) < MIN_SUBSTRING_LEN or len(b) < MIN_SUBSTRING_LEN:
        return False
    return a in b or b in a


def find_field_for_key(
    key: str, fields: list[UserDataField], identifiers: Mapping[str, frozenset[str]]
) -> UserDataField | None:
    """Premier champ correspondant à la clé: égalité d'abord, inclusion ensuite."""
    norm = normalize_identifier(key)
    if not norm:
        return None
    for field in fields:
        if norm in identifiers[field.id]:
            return field
    for field in fields:
        if any(_contains(norm, ident) for ident in identifiers[field.id]):
            return field
    return None


def _find_concept_field(
    concept: str, fields: list[UserDataField], identifiers: Mapping[str, frozenset[str]]
) -> UserDataField | None:
    key = normalize_identifier(concept)
    return next((f for f in fields if key in identifiers[f.id]), None)


def _propose(
    field: UserDataField, key: str, value: str, language: str
) -> Match | None:
    value = value.strip()
    if not value or value_exists_in_field(field, value, language):
        return None
    return Match(
        field_id=field.id,
        extracted_key=key,
        extracted_value=value,
        target_language=language,
        target_version=versions.available_version(field, language),
    )


def _positional_prefix_fields(
    fields: list[UserDataField], prefixes: Iterable[str], num: str
) -> list[tuple[UserDataField, str]]:
    """Champs `<préfixe><num>...` avec leur suffixe normalisé."""
    found: list[tuple[UserDataField, str]] = []
    for field in fields:
        for ident in (normalize_identifier(field.id), normalize_identifier(field.tag)):
            prefix = next((p + num for p in prefixes if ident.startswith(p + num)), None)
            if prefix is not None:
                found.append((field, ident[len(prefix) :]))
                break
    return found


def _resolve_suffix(
    suffix: str,
    entry: ExperienceEntry | EducationEntry,
    rules: list[tuple[tuple[str, ...], tuple[str, ...]]],
) -> tuple[str, str] | None:
    for keywords, attributes in rules:
        if any(kw in suffix for kw in keywords):
            for attribute in attributes:
                value = getattr(entry, attribute, "")
                if value:
                    return _EXTRACTED_KEY_NAMES.get(attribute, attribute), value
            return None
    return None


def _match_positional(
    section: str,
    entries: list[Any],
    fields: list[UserDataField],
    prefixes: Iterable[str],
    rules: list[tuple[tuple[str, ...], tuple[str, ...]]],
    language: str,
) -> list[Match]:
    matches: list[Match] = []
    for idx, entry in enumerate(entries[:MAX_ARRAY_ENTRIES]):
        num = f"{idx + 1:02d}"
        for field, suffix in _positional_prefix_fields(fields, prefixes, num):
            resolved = _resolve_suffix(suffix, entry, rules)
            if resolved is None:
                continue
            attribute, value = resolved
            match = _propose(field, f"{section}[{idx}].{attribute}", value, language)
            if match is not None:
                matches.append(match)
    return matches


def propose_matches(
    extracted: Mapping[str, Any] | Extraction,
    fields: list[UserDataField],
    base_language: str,
) -> list[Match]:
    """Propose les affectations (non confirmées) des données extraites aux champs.

    Args:
        extracted: résultat brut d'extraction ou `Extraction` déjà validée.
        fields: champs actuels de l'utilisateur.
        base_language: langue cible des propositions.

    Returns:
        list[Match]: propositions, dans l'ordre scalaires, expériences, formations,
        compétences, langues.
    """
    extraction = extracted if isinstance(extracted, Extraction) else parse_extraction(extracted)
    identifiers = {f.id: field_identifiers(f) for f in fields}
    matches: list[Match] = []

    for key, value in extraction.scalars:
        field = find_field_for_key(key, fields, identifiers)
        if field is None:
            continue
        match = _propose(field, key, value, base_language)
        if match is not None:
            matches.append(match)

    matches.extend(
        _match_positional(
            "experience",
            extraction.experience,
            fields,
            EXPERIENCE_PREFIXES,
            EXPERIENCE_SUFFIX_RULES,
            base_language,
        )
    )
    matches.extend(
        _match_positional(
            "education",
            extraction.education,
            fields,
            EDUCATION_PREFIXES,
            EDUCATION_SUFFIX_RULES,
            base_language,
        )
    )

    if extraction.skills:
        skills_field = _find_concept_field("competences", fields, identifiers)
        if skills_field is not None:
            match = _propose(skills_field, "skills", ", ".join(extraction.skills), base_language)
            if match is not None:
                matches.append(match)

    if extraction.languages:
        primary = extraction.languages[0]
        language_field = _find_concept_field("langue01", fields, identifiers)
        level_field = _find_concept_field("niveaulangue01", fields, identifiers)
        if language_field is not None and primary.language:
            match = _propose(
                language_field, "languages[0].language", primary.language, base_language
            )
            if match is not None:
                matches.append(match)
        if level_field is not None and primary.level:
            match = _propose(level_field, "languages[0].level", primary.level, base_language)
            if match is not None:
                matches.append(match)

    return matches

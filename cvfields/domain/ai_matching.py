"""Correspondance sémantique assistée par LLM.

Le modèle reçoit la description des champs (id, nom, tag, type, quelques valeurs existantes) et
les données extraites; il répond en JSON `{"matches": [...]}`. Les propositions sont ensuite
filtrées localement: seuil de confiance, champ inconnu, valeur vide ou déjà présente. La version
cible est toujours recalculée ici (première version libre), jamais reprise du modèle.

Si le modèle est indisponible ou répond hors format, la correspondance heuristique prend le
relais.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import structlog

from cvfields.domain import versions
from cvfields.domain.entities import UserDataField
from cvfields.domain.extraction import parse_extraction
from cvfields.domain.matching import Match, propose_matches, value_exists_in_field
from cvfields.infra.llm.base import LLM, LLMError

MAX_EXAMPLE_VALUES = 3

SYSTEM_PROMPT = (
    "Tu es un expert en matching de données de CV. Tu analyses la sémantique et fais "
    "correspondre intelligemment les données extraites avec les champs utilisateur."
)

USER_PROMPT_TEMPLATE = """Fais correspondre les données extraites d'un CV avec les champs de la structure utilisateur.

STRUCTURE DES CHAMPS UTILISATEUR :
{fields}

DONNÉES EXTRAITES DU CV :
{extracted}

RÈGLES :
- Analyse la sémantique, les variations linguistiques et les synonymes (firstName = prenom, email = mail = courriel, jobTitle = poste).
- Expériences vers les champs xp01, xp02... dans l'ordre; formations vers for01, for02...; langues vers langue01, langue02...
- Ne propose un mapping que si la correspondance est claire (confiance >= {threshold_pct}).
- Pas de mapping pour une valeur vide ou déjà présente dans le champ.
- Pour les tableaux, utilise des clés de la forme 'experience[0].company'.

Retourne UNIQUEMENT un JSON valide, sans markdown, de la forme :
{{"matches": [{{"extractedKey": "...", "extractedValue": "...", "fieldId": "...", "confidence": 0-100, "reason": "..."}}]}}"""


def normalize_confidence(raw: Any) -> float | None:
    """Confiance ramenée dans [0, 1] (les valeurs > 1 sont lues en pourcentage)."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if value > 1:
        value /= 100.0
    return max(0.0, min(1.0, value))


def describe_fields(fields: list[UserDataField]) -> list[dict[str, Any]]:
    """Description compacte des champs envoyée au modèle."""
    described: list[dict[str, Any]] = []
    for field in fields:
        examples = [
            f"{language} v{version}: {value}"
            for language, version, value in versions.stored_slots(field)
        ][:MAX_EXAMPLE_VALUES]
        described.append(
            {
                "id": field.id,
                "name": field.name,
                "tag": field.tag,
                "type": field.type,
                "baseLanguage": field.base_language,
                "existingValues": examples or ["Aucune valeur existante"],
            }
        )
    return described


def build_messages(
    extracted: Mapping[str, Any], fields: list[UserDataField], threshold: float
) -> list[dict[str, str]]:
    """Messages chat (système + utilisateur) pour la requête de correspondance."""
    prompt = USER_PROMPT_TEMPLATE.format(
        fields=json.dumps(describe_fields(fields), ensure_ascii=False, indent=2),
        extracted=json.dumps(extracted, ensure_ascii=False, indent=2, default=str),
        threshold_pct=int(round(threshold * 100)),
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


class AIFieldMatcher:
    """Correspondance via LLM avec repli heuristique."""

    def __init__(self, llm: LLM, threshold: float = 0.7) -> None:
        self.llm = llm
        self.threshold = threshold
        self._log = structlog.get_logger(__name__).bind(component="ai_field_matcher")

    def _parse(
        self, raw: str, fields: list[UserDataField], base_language: str
    ) -> list[Match]:
        payload = json.loads(raw)
        if not isinstance(payload, dict) or not isinstance(payload.get("matches"), list):
            raise ValueError("llm_payload_without_matches")

        by_id = {field.id: field for field in fields}
        matches: list[Match] = []
        for item in payload["matches"]:
            if not isinstance(item, dict):
                continue
            field = by_id.get(str(item.get("fieldId", "")))
            value = str(item.get("extractedValue") or "").strip()
            confidence = normalize_confidence(item.get("confidence"))
            if field is None or not value:
                continue
            if confidence is None or confidence < self.threshold:
                continue
            if value_exists_in_field(field, value, base_language):
                continue
            reason = item.get("reason")
            matches.append(
                Match(
                    field_id=field.id,
                    extracted_key=str(item.get("extractedKey") or ""),
                    extracted_value=value,
                    target_language=base_language,
                    target_version=versions.available_version(field, base_language),
                    confidence=confidence,
                    reason=str(reason) if reason else None,
                )
            )
        return matches

    async def propose(
        self,
        extracted: Mapping[str, Any],
        fields: list[UserDataField],
        base_language: str,
    ) -> list[Match]:
        """Propositions du modèle, ou de l'heuristique si le modèle échoue.

        Raises:
            ExtractionError: si la charge extraite n'est pas un objet clé/valeur.
        """
        parse_extraction(extracted)
        messages = build_messages(extracted, fields, self.threshold)
        try:
            raw = await asyncio.to_thread(
                self.llm.generate,
                messages,
                response_format={"type": "json_object"},
                temperature=0.2,
            )
            matches = self._parse(raw, fields, base_language)
        except (LLMError, ValueError) as err:
            self._log.warning("ai_matching_fallback", reason=str(err))
            return propose_matches(extracted, fields, base_language)
        self._log.info("ai_matching_done", matches=len(matches))
        return matches

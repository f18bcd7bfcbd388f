"""Moteur de réconciliation des traductions d'un champ.

Objectif du module
------------------
- Propager la valeur d'un emplacement source (langue de travail, version) vers toutes les autres
  langues supportées via le fournisseur de traduction.
- Mémoriser, pour chaque emplacement, la dernière traduction automatique produite ("marqueur"),
  afin de distinguer une valeur encore automatique d'une valeur modifiée à la main.
- Ne jamais écraser une valeur modifiée manuellement; ne jamais effacer une traduction parce que
  la source est vide (l'effacement passe par `clear_version`).

Les marqueurs vivent en mémoire, par instance de moteur (donc par session d'édition). Au premier
passage d'un champ, ses valeurs stockées sont considérées comme automatiques.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from cvfields.domain import versions
from cvfields.domain.entities import VERSIONS, UserDataField
from cvfields.infra.translation.base import TranslationError, Translator

Slot = tuple[str, int]


@dataclass(frozen=True)
class AutoTranslation:
    """Dernière traduction automatique connue d'un emplacement.

    `source_text`/`source_language` valent None pour un marqueur posé au chargement.
    """

    text: str
    source_text: str | None = None
    source_language: str | None = None


class TranslationEngine:
    """Réconciliation (langue, version) -> contenu pour les champs d'une session."""

    def __init__(self, translator: Translator, supported_languages: Iterable[str]) -> None:
        """Initialise le moteur.

        Args:
            translator: fournisseur de traduction (asynchrone).
            supported_languages: ensemble fermé des langues maintenues synchronisées.
        """
        self.translator = translator
        self.supported_languages = list(dict.fromkeys(supported_languages))
        self._markers: dict[str, dict[Slot, AutoTranslation]] = {}
        self._log = structlog.get_logger(__name__).bind(component="translation_engine")

    # -------------------- Marqueurs --------------------

    def track(self, field: UserDataField) -> None:
        """Pose les marqueurs initiaux d'un champ jamais vu (valeurs stockées = automatiques)."""
        if field.id in self._markers:
            return
        self._markers[field.id] = {
            (language, version): AutoTranslation(text=value)
            for language, version, value in versions.stored_slots(field)
        }

    def marker(self, field_id: str, language: str, version: int) -> AutoTranslation | None:
        """Marqueur de l'emplacement, None si aucune traduction automatique n'est connue."""
        return self._markers.get(field_id, {}).get((language, version))

    def _set_marker(
        self,
        field_id: str,
        language: str,
        version: int,
        marker: AutoTranslation,
    ) -> None:
        self._markers.setdefault(field_id, {})[(language, version)] = marker

    def is_manually_modified(self, field: UserDataField, language: str, version: int) -> bool:
        """Vrai si la valeur stockée est non vide et diffère du marqueur connu."""
        value = versions.get_value(field, language, version)
        marker = self.marker(field.id, language, version)
        return bool(value) and marker is not None and value != marker.text

    def _is_up_to_date(
        self,
        field: UserDataField,
        language: str,
        version: int,
        source_text: str,
        source_language: str,
    ) -> bool:
        marker = self.marker(field.id, language, version)
        if marker is None or marker.source_text is None:
            return False
        return (
            versions.get_value(field, language, version) == marker.text
            and marker.source_text == source_text
            and marker.source_language == source_language
        )

    # -------------------- Traduction --------------------

    async def _translate_one(
        self, text: str, target_language: str, source_language: str
    ) -> str | None:
        """Appel fournisseur isolé: un échec est journalisé et renvoie None."""
        try:
            return await self.translator.translate(text, target_language, source_language)
        except TranslationError as err:
            self._log.warning(
                "translation_failed",
                target_language=target_language,
                source_language=source_language,
                code=err.code.value,
            )
        except Exception:
            self._log.error(
                "translation_unexpected_error",
                target_language=target_language,
                source_language=source_language,
                exc_info=True,
            )
        return None

    def plan_targets(
        self,
        field: UserDataField,
        source_language: str,
        version: int,
        source_text: str,
    ) -> list[str]:
        """Langues à (re)traduire pour un emplacement source donné."""
        self.track(field)
        if not source_text.strip():
            return []
        targets: list[str] = []
        for language in self.supported_languages:
            if language == source_language:
                continue
            if self.is_manually_modified(field, language, version):
                self._log.debug(
                    "propagation_skipped_manual",
                    field_id=field.id,
                    language=language,
                    version=version,
                )
                continue
            if self._is_up_to_date(field, language, version, source_text, source_language):
                continue
            targets.append(language)
        return targets

    async def translate_slots(
        self,
        field: UserDataField,
        source_language: str,
        version: int,
        source_text: str,
    ) -> dict[str, str]:
        """Traduit en parallèle vers chaque langue cible; renvoie les seuls succès."""
        targets = self.plan_targets(field, source_language, version, source_text)
        if not targets:
            return {}
        results = await asyncio.gather(
            *(self._translate_one(source_text, language, source_language) for language in targets)
        )
        return {
            language: text
            for language, text in zip(targets, results, strict=True)
            if text is not None
        }

    def apply_translations(
        self,
        field: UserDataField,
        version: int,
        translations: dict[str, str],
        source_text: str,
        source_language: str,
    ) -> UserDataField:
        """Écrit les traductions sur l'instantané courant du champ et met à jour les marqueurs.

        Le contrôle de modification manuelle est refait ici: une saisie intervenue pendant
        l'attente du fournisseur n'est jamais écrasée.
        """
        self.track(field)
        for language, text in translations.items():
            if self.is_manually_modified(field, language, version):
                self._log.info(
                    "translation_discarded_manual_edit",
                    field_id=field.id,
                    language=language,
                    version=version,
                )
                continue
            field = versions.set_value(field, language, version, text)
            self._set_marker(
                field.id,
                language,
                version,
                AutoTranslation(
                    text=text, source_text=source_text, source_language=source_language
                ),
            )
        return field

    async def propagate(
        self,
        field: UserDataField,
        working_language: str,
        version: int,
        source_text: str,
    ) -> UserDataField:
        """Propage `source_text` (langue de travail, version) vers les autres langues.

        Returns:
            UserDataField: nouveau champ avec les traductions réussies.
        """
        translations = await self.translate_slots(field, working_language, version, source_text)
        if translations:
            self._log.info(
                "propagation_applied",
                field_id=field.id,
                version=version,
                source_language=working_language,
                languages=len(translations),
            )
        return self.apply_translations(
            field, version, translations, source_text, working_language
        )

    async def translate_versions(
        self,
        field: UserDataField,
        target_language: str,
        source_language: str,
    ) -> dict[int, tuple[str, str]]:
        """Traduit les versions sources non vides vers `target_language`.

        Returns:
            dict[int, tuple[str, str]]: version -> (texte source, traduction), succès seuls.
        """
        self.track(field)
        if target_language == source_language:
            return {}
        jobs: list[tuple[int, str]] = []
        for version in VERSIONS:
            source_text = versions.get_value(field, source_language, version)
            if not source_text.strip():
                continue
            if self.is_manually_modified(field, target_language, version):
                continue
            if self._is_up_to_date(
                field, target_language, version, source_text, source_language
            ):
                continue
            jobs.append((version, source_text))
        results = await asyncio.gather(
            *(self._translate_one(text, target_language, source_language) for _, text in jobs)
        )
        return {
            version: (source_text, text)
            for (version, source_text), text in zip(jobs, results, strict=True)
            if text is not None
        }

    async def translate_into(
        self,
        field: UserDataField,
        target_language: str,
        source_language: str | None = None,
    ) -> UserDataField:
        """Traduit les trois versions d'un champ vers une seule langue cible.

        La source par défaut est la langue de base du champ. Les emplacements modifiés à la main
        sont conservés.
        """
        source_language = source_language or field.base_language
        translated = await self.translate_versions(field, target_language, source_language)
        for version, (source_text, text) in translated.items():
            field = self.apply_translations(
                field, version, {target_language: text}, source_text, source_language
            )
        return field

    # -------------------- Effacement / réinitialisation --------------------

    def clear_version(self, field: UserDataField, version: int) -> UserDataField:
        """Efface la version dans toutes les langues ainsi que ses marqueurs."""
        cleared = versions.clear_version(field, version)
        markers = self._markers.get(field.id)
        if markers:
            for slot in [slot for slot in markers if slot[1] == version]:
                del markers[slot]
        self._log.info("version_cleared", field_id=field.id, version=version)
        return cleared

    async def resolve_auto_translation(
        self,
        field: UserDataField,
        language: str,
        version: int,
        working_language: str,
    ) -> AutoTranslation | None:
        """Traduction automatique à restaurer pour un emplacement, None si indisponible.

        Avec un marqueur: son texte exact. Sans marqueur: traduction de la valeur source courante
        (langue de travail, ou langue de base si la cible est la langue de travail).
        """
        self.track(field)
        marker = self.marker(field.id, language, version)
        if marker is not None:
            return marker

        source_language = working_language if language != working_language else field.base_language
        source_text = versions.get_value(field, source_language, version)
        if source_language == language or not source_text.strip():
            self._log.info(
                "reset_without_source", field_id=field.id, language=language, version=version
            )
            return None
        text = await self._translate_one(source_text, language, source_language)
        if text is None:
            return None
        return AutoTranslation(
            text=text, source_text=source_text, source_language=source_language
        )

    def apply_auto_translation(
        self,
        field: UserDataField,
        language: str,
        version: int,
        auto: AutoTranslation,
    ) -> UserDataField:
        """Écrit la traduction automatique sur l'emplacement seul et la marque."""
        field = versions.set_value(field, language, version, auto.text)
        self._set_marker(field.id, language, version, auto)
        return field

    async def reset_to_auto_translation(
        self,
        field: UserDataField,
        language: str,
        version: int,
        working_language: str,
    ) -> UserDataField:
        """Remet un emplacement sur sa traduction automatique (champ inchangé si impossible)."""
        auto = await self.resolve_auto_translation(field, language, version, working_language)
        if auto is None:
            return field
        return self.apply_auto_translation(field, language, version, auto)

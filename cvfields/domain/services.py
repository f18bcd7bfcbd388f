"""Session d'édition d'un CV multilingue.

Responsabilités
---------------
- Détenir l'instantané courant de l'utilisateur, la langue de travail, le moteur de traduction,
  le planificateur de propagation et le dépôt.
- Exposer les opérations d'édition (saisie, effacement de version, réinitialisation, changement
  de langue de travail, correspondance et validation des données extraites).
- Programmer la propagation différée après une saisie dans la langue de travail, et l'appliquer
  sur l'instantané le plus récent.

Chaque opération renvoie l'instantané mis à jour (champ ou utilisateur); les modèles ne sont
jamais modifiés en place.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import structlog

from cvfields.domain import versions
from cvfields.domain.ai_matching import AIFieldMatcher
from cvfields.domain.default_structure import default_fields
from cvfields.domain.entities import VERSIONS, FieldType, User, UserDataField, utcnow_iso
from cvfields.domain.extraction import normalize_identifier
from cvfields.domain.matching import Match, propose_matches
from cvfields.domain.scheduler import PropagationScheduler
from cvfields.domain.translation_engine import TranslationEngine
from cvfields.infra.repositories import StoreError
from cvfields.infra.translation.base import Translator


class CVEditingSession:
    """Session d'édition d'un utilisateur (un moteur et un planificateur par session)."""

    def __init__(
        self,
        user: User,
        engine: TranslationEngine,
        scheduler: PropagationScheduler,
        repo: Any,
        *,
        working_language: str | None = None,
        matcher: AIFieldMatcher | None = None,
    ) -> None:
        """Ouvre la session.

        Paramètres:
        - user: instantané chargé depuis le dépôt.
        - engine: moteur de réconciliation (marqueurs propres à la session).
        - scheduler: planificateur des propagations différées.
        - repo: dépôt utilisateurs (InMemory ou Redis).
        - working_language: langue source des propagations (défaut: `user.base_language`).
        - matcher: correspondance IA optionnelle.
        """
        self.engine = engine
        self.scheduler = scheduler
        self.repo = repo
        self.matcher = matcher
        self.working_language = working_language or user.base_language
        self._check_language(self.working_language)
        self.user = user
        self.dirty = False
        self.closed = False
        self._epoch = 0
        self._log = structlog.get_logger(__name__).bind(component="cv_session", user_id=user.id)
        for field in user.data:
            engine.track(field)

    # -------------------- Helpers internes --------------------

    def _check_language(self, language: str) -> None:
        if language not in self.engine.supported_languages:
            raise ValueError(f"unsupported_language:{language}")

    @staticmethod
    def _check_version(version: int) -> None:
        if version not in VERSIONS:
            raise ValueError(f"invalid_version:{version}")

    def _replace_field(self, updated: UserDataField) -> UserDataField:
        user = self.user.with_field(updated)
        self.user = user.model_copy(update={"updated_at": utcnow_iso()})
        self.dirty = True
        return updated

    def field(self, field_id: str) -> UserDataField:
        """Champ courant `field_id` (KeyError s'il n'existe pas)."""
        return self.user.field(field_id)

    # -------------------- Édition --------------------

    def set_value(
        self, field_id: str, language: str, version: int, text: str
    ) -> UserDataField:
        """Écrit une valeur; une saisie dans la langue de travail programme la propagation.

        La propagation n'est programmée que si une boucle asyncio est active (routes, tests
        asynchrones).
        """
        self._check_language(language)
        self._check_version(version)
        updated = self._replace_field(
            versions.set_value(self.field(field_id), language, version, text)
        )
        if language == self.working_language:
            self.on_source_value_changed(field_id, version, text)
        return updated

    def on_source_value_changed(self, field_id: str, version: int, text: str) -> None:
        """(Re)programme la propagation différée de l'emplacement source."""
        if self.closed:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._log.debug(
                "propagation_not_scheduled", field_id=field_id, reason="no_event_loop"
            )
            return
        epoch = self._epoch
        language = self.working_language

        async def _propagate() -> None:
            await self._run_propagation(field_id, version, text, language, epoch)

        self.scheduler.schedule((field_id, version), _propagate)

    def _is_stale(
        self, field_id: str, version: int, text: str, language: str, epoch: int
    ) -> str:
        """Raison d'abandon d'une propagation programmée, chaîne vide si elle reste valide."""
        if self.closed:
            return "session_closed"
        if epoch != self._epoch or language != self.working_language:
            return "working_language_changed"
        try:
            field = self.field(field_id)
        except KeyError:
            return "field_removed"
        if versions.get_value(field, language, version) != text:
            return "value_changed"
        return ""

    async def _run_propagation(
        self, field_id: str, version: int, text: str, language: str, epoch: int
    ) -> None:
        reason = self._is_stale(field_id, version, text, language, epoch)
        if reason:
            self._log.debug(
                "propagation_dropped", field_id=field_id, version=version, reason=reason
            )
            return
        translations = await self.engine.translate_slots(
            self.field(field_id), language, version, text
        )
        if not translations:
            return
        reason = self._is_stale(field_id, version, text, language, epoch)
        if reason:
            self._log.info(
                "propagation_dropped", field_id=field_id, version=version, reason=reason
            )
            return
        updated = self.engine.apply_translations(
            self.field(field_id), version, translations, text, language
        )
        self._replace_field(updated)
        self._log.info(
            "propagation_applied",
            field_id=field_id,
            version=version,
            source_language=language,
            languages=len(translations),
        )
        self._autosave()

    def clear_version(self, field_id: str, version: int) -> UserDataField:
        """Efface une version dans toutes les langues (et annule sa propagation en attente)."""
        self._check_version(version)
        field = self.field(field_id)
        self.scheduler.cancel((field_id, version))
        return self._replace_field(self.engine.clear_version(field, version))

    async def reset_to_auto_translation(
        self, field_id: str, language: str, version: int
    ) -> UserDataField:
        """Remet l'emplacement sur sa traduction automatique (restaurée ou recalculée).

        Seul cet emplacement est écrit, sur l'instantané relu après l'appel fournisseur: les
        saisies intervenues entre-temps sur les autres emplacements sont conservées.
        """
        self._check_language(language)
        self._check_version(version)
        auto = await self.engine.resolve_auto_translation(
            self.field(field_id), language, version, self.working_language
        )
        latest = self.field(field_id)
        if auto is None:
            return latest
        return self._replace_field(
            self.engine.apply_auto_translation(latest, language, version, auto)
        )

    def change_working_language(self, language: str) -> User:
        """Change la langue source des propagations, sans retraduction.

        Les propagations en attente sont abandonnées; `user.base_language` suit la langue de
        travail.
        """
        self._check_language(language)
        if language == self.working_language:
            return self.user
        dropped = self.scheduler.cancel_all()
        self._epoch += 1
        self._log.info(
            "working_language_changed",
            previous=self.working_language,
            language=language,
            dropped=dropped,
        )
        self.working_language = language
        self.user = self.user.model_copy(
            update={"base_language": language, "updated_at": utcnow_iso()}
        )
        self.dirty = True
        return self.user

    def add_field(
        self,
        name: str,
        tag: str | None = None,
        type: FieldType = "text",
        metadata: dict[str, Any] | None = None,
    ) -> UserDataField:
        """Ajoute un champ vide, rattaché à la langue de travail."""
        now = utcnow_iso()
        field = UserDataField(
            id=f"field_{uuid.uuid4().hex}",
            name=name,
            tag=tag or normalize_identifier(name) or "field",
            type=type,
            base_language=self.working_language,
            created_at=now,
            updated_at=now,
            metadata=metadata,
        )
        self.engine.track(field)
        self.user = self.user.model_copy(
            update={"data": [*self.user.data, field], "updated_at": now}
        )
        self.dirty = True
        self._log.info("field_added", field_id=field.id, tag=field.tag)
        return field

    async def translate_all_fields(self, target_language: str) -> User:
        """Traduit toutes les versions de tous les champs vers une langue cible.

        La source de chaque champ est sa langue de base; les emplacements modifiés à la main
        sont conservés.
        """
        self._check_language(target_language)
        translated_slots = 0
        for field_id in [f.id for f in self.user.data]:
            field = self.field(field_id)
            translated = await self.engine.translate_versions(
                field, target_language, field.base_language
            )
            try:
                latest = self.field(field_id)
            except KeyError:
                continue
            for version, (source_text, text) in translated.items():
                if versions.get_value(latest, latest.base_language, version) != source_text:
                    continue
                latest = self.engine.apply_translations(
                    latest, version, {target_language: text}, source_text, latest.base_language
                )
                translated_slots += 1
            if translated:
                self._replace_field(latest)
        self._log.info(
            "translate_all_done", target_language=target_language, slots=translated_slots
        )
        return self.user

    # -------------------- Correspondance --------------------

    def propose_matches(self, extracted: Mapping[str, Any]) -> list[Match]:
        """Propositions heuristiques vers la langue de travail (aucune écriture)."""
        return propose_matches(extracted, self.user.data, self.working_language)

    async def propose_matches_ai(self, extracted: Mapping[str, Any]) -> list[Match]:
        """Propositions du LLM (repli heuristique si indisponible)."""
        if self.matcher is None:
            return self.propose_matches(extracted)
        return await self.matcher.propose(extracted, self.user.data, self.working_language)

    def commit_matches(self, matches: Iterable[Match]) -> User:
        """Écrit les propositions confirmées, dans l'ordre, via `set_value`.

        Le lot est validé en entier avant toute écriture: un champ inconnu (KeyError) ou une
        langue ou version invalide (ValueError) laisse l'utilisateur inchangé.
        """
        matches = list(matches)
        for match in matches:
            self.field(match.field_id)
            self._check_language(match.target_language)
            self._check_version(match.target_version)
        committed = 0
        for match in matches:
            self.set_value(
                match.field_id, match.target_language, match.target_version, match.extracted_value
            )
            committed += 1
        self._log.info("matches_committed", count=committed)
        return self.user

    # -------------------- Persistance --------------------

    def save(self) -> User:
        """Persiste l'utilisateur (remplacement complet).

        Raises:
            StoreError: le dépôt a échoué; les modifications restent en session (dirty).
        """
        self.repo.save(self.user.to_record())
        self.dirty = False
        self._log.info("user_saved", fields=len(self.user.data))
        return self.user

    def _autosave(self) -> None:
        if not self.dirty:
            return
        try:
            self.save()
        except StoreError as err:
            self._log.warning("autosave_failed", error=str(err))

    async def wait_idle(self) -> None:
        """Attend la fin des propagations programmées."""
        await self.scheduler.drain()

    def close(self) -> None:
        """Ferme la session: plus aucune propagation n'est appliquée."""
        self.closed = True
        self._epoch += 1
        self.scheduler.cancel_all()


class SessionRegistry:
    """Sessions d'édition ouvertes, une par utilisateur."""

    def __init__(
        self,
        repo: Any,
        translator: Translator,
        supported_languages: Iterable[str],
        *,
        debounce_s: float = 1.0,
        default_base_language: str = "fr",
        matcher_factory: Callable[[], AIFieldMatcher | None] | None = None,
    ) -> None:
        self.repo = repo
        self.translator = translator
        self.supported_languages = list(supported_languages)
        self.debounce_s = debounce_s
        self.default_base_language = default_base_language
        self.matcher_factory = matcher_factory
        self._sessions: dict[str, CVEditingSession] = {}
        self._log = structlog.get_logger(__name__).bind(component="session_registry")

    def _open(self, user: User) -> CVEditingSession:
        session = CVEditingSession(
            user,
            TranslationEngine(self.translator, self.supported_languages),
            PropagationScheduler(self.debounce_s),
            self.repo,
            matcher=self.matcher_factory() if self.matcher_factory else None,
        )
        self._sessions[user.id] = session
        return session

    def create_user(
        self, email: str, name: str = "", base_language: str | None = None
    ) -> CVEditingSession:
        """Crée un utilisateur avec la structure par défaut et ouvre sa session."""
        base_language = base_language or self.default_base_language
        if base_language not in self.supported_languages:
            raise ValueError(f"unsupported_language:{base_language}")
        if self.repo.get_by_email(email):
            raise ValueError("email_already_registered")
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            base_language=base_language,
            data=default_fields(base_language),
        )
        session = self._open(user)
        session.save()
        self._log.info("user_created", user_id=user.id)
        return session

    def get(self, user_id: str) -> CVEditingSession:
        """Session ouverte de l'utilisateur, chargée depuis le dépôt au premier accès.

        Raises:
            KeyError: utilisateur inconnu.
            StoreError: dépôt indisponible.
        """
        session = self._sessions.get(user_id)
        if session is not None:
            return session
        record = self.repo.get(user_id)
        if record is None:
            raise KeyError("user_not_found")
        return self._open(User.model_validate(record))

    def close(self, user_id: str) -> None:
        """Ferme et oublie la session de l'utilisateur."""
        session = self._sessions.pop(user_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        """Ferme toutes les sessions ouvertes."""
        for user_id in list(self._sessions):
            self.close(user_id)

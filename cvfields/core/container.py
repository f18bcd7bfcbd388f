"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (settings, dépôt utilisateurs, traducteur, LLM, sessions)
et expose un singleton `container` utilisé par le reste de l'application.
"""

import structlog

from cvfields.core.settings import get_settings
from cvfields.domain.ai_matching import AIFieldMatcher
from cvfields.domain.services import SessionRegistry
from cvfields.infra.llm.openai_client import OpenAILLM
from cvfields.infra.repositories import InMemoryUserRepo, RedisUserRepo
from cvfields.infra.translation.deepl_client import DeepLTranslator

log = structlog.get_logger(__name__)


class Container:
    def __init__(self):
        self.settings = get_settings()

        # users
        if self.settings.REDIS_URL:
            try:
                self.user_repo = RedisUserRepo(self.settings.REDIS_URL)
                self.storage_backend = "redis"
            except Exception as err:
                if self.settings.REQUIRE_REDIS:
                    raise RuntimeError("Redis required but unavailable") from err
                log.warning("redis_unavailable_memory_fallback", error=type(err).__name__)
                self.user_repo = InMemoryUserRepo()
                self.storage_backend = "memory-fallback"
        else:
            if self.settings.REQUIRE_REDIS:
                raise RuntimeError("Redis required but REDIS_URL not set")
            self.user_repo = InMemoryUserRepo()
            self.storage_backend = "memory"

        # translation / matching
        self.translator = DeepLTranslator(
            self.settings.DEEPL_API_KEY,
            timeout_s=self.settings.TRANSLATION_TIMEOUT_S,
            max_retries=self.settings.TRANSLATION_MAX_RETRIES,
        )
        self.llm = OpenAILLM(
            api_key=self.settings.OPENAI_API_KEY, model=self.settings.MATCHING_MODEL
        )
        self.sessions = SessionRegistry(
            self.user_repo,
            self.translator,
            self.settings.SUPPORTED_LANGUAGES,
            debounce_s=self.settings.TRANSLATION_DEBOUNCE_S,
            default_base_language=self.settings.DEFAULT_BASE_LANGUAGE,
            matcher_factory=self.matcher,
        )

    def matcher(self) -> AIFieldMatcher | None:
        """Correspondance IA si une clé OpenAI est configurée, sinon None (heuristique)."""
        if not self.llm.available:
            return None
        return AIFieldMatcher(self.llm, threshold=self.settings.MATCH_CONFIDENCE_THRESHOLD)

    async def aclose(self) -> None:
        """Ferme les sessions et les clients réseau."""
        self.sessions.close_all()
        await self.translator.aclose()


container = Container()

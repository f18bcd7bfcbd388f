"""Interface de base pour les fournisseurs de traduction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum


class TranslationErrorCode(str, Enum):
    """Taxonomie des erreurs fournisseur (le moteur n'a besoin que de succès/échec)."""

    MISSING_API_KEY = "missing_api_key"
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"


RETRYABLE_CODES = frozenset(
    {
        TranslationErrorCode.RATE_LIMITED,
        TranslationErrorCode.NETWORK_ERROR,
        TranslationErrorCode.TIMEOUT,
    }
)


class TranslationError(Exception):
    """Échec d'un appel de traduction, classé par code."""

    def __init__(
        self,
        code: TranslationErrorCode,
        message: str = "",
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message or code.value)
        self.code = code
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Indique si une nouvelle tentative a une chance d'aboutir."""
        return self.code in RETRYABLE_CODES


class Translator(ABC):
    """Interface abstraite d'un fournisseur de traduction."""

    @abstractmethod
    async def translate(self, text: str, target_language: str, source_language: str) -> str:
        """Traduit `text` de `source_language` vers `target_language`.

        Lève `TranslationError` en cas d'échec.
        """
        ...

    async def aclose(self) -> None:
        """Libère les ressources réseau éventuelles."""
        return None

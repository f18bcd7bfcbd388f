# ============================================================
# Module : cvfields/infra/translation/deepl_client.py
# Objet  : Client DeepL asynchrone (httpx) avec retry et backoff.
# Contexte : Les erreurs sont classées (TranslationErrorCode); seules les erreurs
#            transitoires (429/529, 5xx, réseau, timeout) sont retentées.
# ============================================================

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

from cvfields.core.http_constants import (
    HTTP_BAD_REQUEST,
    HTTP_DEEPL_QUOTA_EXCEEDED,
    HTTP_DEEPL_TOO_MANY_REQUESTS,
    HTTP_FORBIDDEN,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_PAYLOAD_TOO_LARGE,
    HTTP_REQUEST_TIMEOUT,
    HTTP_TOO_MANY_REQUESTS,
    HTTP_UNAUTHORIZED,
)
from cvfields.infra.translation.base import (
    TranslationError,
    TranslationErrorCode,
    Translator,
)

DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"

# Codes cibles DeepL (les variantes régionales ne sont acceptées qu'en cible)
TARGET_LANG_MAP: dict[str, str] = {
    "en": "EN-US",
    "pt": "PT-PT",
}


def to_deepl_target(language: str) -> str:
    """Convertit un code interne (ex: 'pt', 'en-GB') en code cible DeepL."""
    base = language.lower().split("-")[0]
    return TARGET_LANG_MAP.get(base, base.upper())


def to_deepl_source(language: str) -> str:
    """Convertit un code interne en code source DeepL (sans variante régionale)."""
    return language.lower().split("-")[0].upper()


def classify_status(status_code: int) -> TranslationErrorCode:
    """Associe un statut HTTP DeepL à un code d'erreur."""
    if status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        return TranslationErrorCode.INVALID_API_KEY
    if status_code == HTTP_DEEPL_QUOTA_EXCEEDED:
        return TranslationErrorCode.QUOTA_EXCEEDED
    if status_code in (HTTP_TOO_MANY_REQUESTS, HTTP_DEEPL_TOO_MANY_REQUESTS):
        return TranslationErrorCode.RATE_LIMITED
    if status_code in (HTTP_BAD_REQUEST, HTTP_PAYLOAD_TOO_LARGE):
        return TranslationErrorCode.INVALID_INPUT
    if status_code == HTTP_REQUEST_TIMEOUT:
        return TranslationErrorCode.TIMEOUT
    if status_code >= HTTP_INTERNAL_SERVER_ERROR:
        return TranslationErrorCode.NETWORK_ERROR
    return TranslationErrorCode.UNKNOWN


class DeepLTranslator(Translator):
    """Fournisseur de traduction DeepL.

    Les clés se terminant par `:fx` utilisent l'endpoint gratuit. Sans clé, chaque appel lève
    `TranslationError(MISSING_API_KEY)` sans accès réseau.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout_s: float = 10.0,
        max_retries: int = 3,
        base_delay_s: float = 1.0,
        max_delay_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.url = DEEPL_FREE_URL if self.api_key.endswith(":fx") else DEEPL_PRO_URL
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self._log = structlog.get_logger(__name__).bind(component="deepl_translator")
        if client is not None:
            self._client = client
        else:
            timeout = httpx.Timeout(timeout_s, connect=5.0)
            limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
            self._client = httpx.AsyncClient(timeout=timeout, limits=limits)

    def _delay(self, attempt: int) -> float:
        """Backoff exponentiel avec 30% de jitter, borné par max_delay_s."""
        exponential = self.base_delay_s * (2**attempt)
        jitter = random.random() * 0.3 * exponential
        return min(exponential + jitter, self.max_delay_s)

    async def _post_once(self, text: str, target_language: str, source_language: str) -> str:
        data = {"text": text, "target_lang": to_deepl_target(target_language)}
        if source_language:
            data["source_lang"] = to_deepl_source(source_language)
        headers = {"Authorization": f"DeepL-Auth-Key {self.api_key}"}
        try:
            resp = await self._client.post(self.url, data=data, headers=headers)
        except httpx.TimeoutException as exc:
            raise TranslationError(TranslationErrorCode.TIMEOUT, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise TranslationError(TranslationErrorCode.NETWORK_ERROR, str(exc)) from exc

        if resp.status_code >= HTTP_BAD_REQUEST:
            raise TranslationError(
                classify_status(resp.status_code),
                f"deepl_http_{resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
            return str(payload["translations"][0]["text"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TranslationError(
                TranslationErrorCode.UNKNOWN, "deepl_malformed_response"
            ) from exc

    async def translate(self, text: str, target_language: str, source_language: str) -> str:
        if not self.api_key:
            raise TranslationError(TranslationErrorCode.MISSING_API_KEY)
        if not text or not text.strip():
            raise TranslationError(TranslationErrorCode.INVALID_INPUT, "empty_text")

        attempt = 0
        while True:
            try:
                return await self._post_once(text, target_language, source_language)
            except TranslationError as err:
                if not err.retryable or attempt >= self.max_retries:
                    raise
                delay = self._delay(attempt)
                self._log.info(
                    "deepl_retry",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    code=err.code.value,
                    delay_s=round(delay, 3),
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def aclose(self) -> None:
        await self._client.aclose()

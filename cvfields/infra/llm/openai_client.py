"""
Client LLM basé sur l'API OpenAI.

Implémente l'interface LLM en supportant:
- chat.completions (SDK OpenAI)
- responses (SDK OpenAI plus récent) en second recours

Sans clé API, aucun client n'est créé et chaque appel lève `LLMError`; l'appelant bascule alors
sur sa stratégie heuristique.
"""

from __future__ import annotations

from typing import Any

import openai
import structlog
from openai import OpenAI

from cvfields.infra.llm.base import LLM, LLMError


class OpenAILLM(LLM):
    """LLM basé sur OpenAI."""

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini") -> None:
        """Initialise le client OpenAI si une clé est fournie."""
        self.model = model
        self.client: OpenAI | None = OpenAI(api_key=api_key) if api_key else None
        self._log = structlog.get_logger(__name__).bind(component="openai_llm")

    @property
    def available(self) -> bool:
        """Vrai si un client OpenAI est configuré."""
        return self.client is not None

    def generate(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Génère du texte via chat.completions, puis via responses en second recours."""
        if self.client is None:
            raise LLMError("llm_not_configured")

        text = self._try_chat_completions(messages, **kwargs)
        if text is None:
            text = self._try_responses_api(messages)
        if text is None:
            raise LLMError("llm_empty_response")
        return text

    # -------------------- Helpers internes --------------------

    def _try_chat_completions(
        self, messages: list[dict[str, str]], **kwargs: Any
    ) -> str | None:
        """Tente d'utiliser l'API chat.completions."""
        try:
            resp = self.client.chat.completions.create(  # type: ignore[union-attr]
                model=self.model,
                messages=messages,
                **kwargs,
            )
        except openai.OpenAIError as err:
            self._log.warning("openai_chat_failed", error=type(err).__name__)
            return None
        choice = resp.choices[0] if resp.choices else None
        content = getattr(getattr(choice, "message", None), "content", None)
        return str(content) if content else None

    def _try_responses_api(self, messages: list[dict[str, str]]) -> str | None:
        """Tente d'utiliser l'API responses."""
        try:
            resp = self.client.responses.create(  # type: ignore[union-attr]
                model=self.model,
                input=messages,
            )
        except openai.OpenAIError as err:
            self._log.warning("openai_responses_failed", error=type(err).__name__)
            return None
        content = getattr(resp, "output_text", None)
        return str(content) if content else None

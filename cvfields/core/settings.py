"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default

DEFAULT_SUPPORTED_LANGUAGES = [
    "fr",
    "en",
    "es",
    "de",
    "it",
    "pt",
    "nl",
    "pl",
    "ru",
    "ja",
    "zh",
    "ko",
    "ar",
    "cs",
    "da",
    "el",
    "hu",
    "id",
    "nb",
    "sv",
    "tr",
    "uk",
]


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
    )
    APP_NAME: str = "cvfields-backend"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Stockage des utilisateurs
    REDIS_URL: str | None = None
    REQUIRE_REDIS: bool = False

    # Traduction (DeepL)
    DEEPL_API_KEY: str | None = None
    TRANSLATION_TIMEOUT_S: float = 10.0
    TRANSLATION_MAX_RETRIES: int = 3
    TRANSLATION_DEBOUNCE_S: float = 1.0
    SUPPORTED_LANGUAGES: list[str] = DEFAULT_SUPPORTED_LANGUAGES
    DEFAULT_BASE_LANGUAGE: str = "fr"

    # Matching IA
    OPENAI_API_KEY: str | None = None
    MATCHING_MODEL: str = "gpt-4o-mini"
    MATCH_CONFIDENCE_THRESHOLD: float = 0.7


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()

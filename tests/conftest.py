"""Configuration de test pour pytest avec gestion des chemins.

Ce module configure pytest pour résoudre les imports `cvfields` en ajoutant la racine du projet au
sys.path, et fournit les fixtures partagées (traducteur factice, dépôt mémoire, session).
"""

import os
import sys

import pytest

# Ensure project root is on sys.path so that
# imports like `from cvfields...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from cvfields.domain.scheduler import PropagationScheduler  # noqa: E402
from cvfields.domain.services import CVEditingSession  # noqa: E402
from cvfields.domain.translation_engine import TranslationEngine  # noqa: E402
from cvfields.infra.repositories import InMemoryUserRepo  # noqa: E402
from tests.fakes import LANGUAGES, FakeTranslator, make_user  # noqa: E402


@pytest.fixture
def translator() -> FakeTranslator:
    """Traducteur déterministe: `text.upper() + "-" + langue`."""
    return FakeTranslator()


@pytest.fixture
def engine(translator: FakeTranslator) -> TranslationEngine:
    """Moteur de réconciliation sur un jeu réduit de langues."""
    return TranslationEngine(translator, LANGUAGES)


@pytest.fixture
def repo() -> InMemoryUserRepo:
    """Dépôt utilisateurs en mémoire."""
    return InMemoryUserRepo()


@pytest.fixture
def session(engine: TranslationEngine, repo: InMemoryUserRepo) -> CVEditingSession:
    """Session d'édition sans délai de debounce, utilisateur francophone."""
    return CVEditingSession(make_user(), engine, PropagationScheduler(delay_s=0), repo)

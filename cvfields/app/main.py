"""
Application principale FastAPI.

Ce module assemble les composants de l'application : middlewares, routes et configuration de
l'API d'édition de champs de CV multilingues.

Responsabilités du module:
- Initialiser le logging structuré
- Construire l'application FastAPI avec son titre/debug
- Ajouter les middlewares (request id, timing)
- Monter les routers (santé et champs)
- Fermer sessions et clients réseau à l'arrêt
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cvfields.api.routes_fields import router as fields_router
from cvfields.api.routes_health import router as health_router
from cvfields.core.container import container
from cvfields.core.logging import setup_logging
from cvfields.middlewares.request_id import RequestIDMiddleware
from cvfields.middlewares.timing import TimingMiddleware


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Ferme les sessions ouvertes et le client de traduction à l'arrêt."""
    yield
    await container.aclose()


def create_app() -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Étapes:
    - Configure le logging structuré (structlog) au niveau LOG_LEVEL
    - Ajoute les middlewares utiles au debug/traçabilité
    - Publie les routes de santé et d'édition des champs
    """
    settings = container.settings
    setup_logging(settings.LOG_LEVEL)
    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG, lifespan=lifespan)
    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.include_router(health_router)
    app.include_router(fields_router)
    return app


app = create_app()

"""
Endpoint de santé pour vérifier la disponibilité de l'API et du backend.

Expose `/health` pour signaler l'état général de l'application, du stockage et des fournisseurs.
"""


from fastapi import APIRouter

from cvfields.core.container import container

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Vérifie la disponibilité de l'API, le backend de stockage et les fournisseurs configurés."""
    return {
        "status": "ok",
        "storage": getattr(container, "storage_backend", "unknown"),
        "redis_url": bool(container.settings.REDIS_URL),
        "translation": bool(container.settings.DEEPL_API_KEY),
        "ai_matching": container.llm.available,
    }

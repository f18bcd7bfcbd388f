"""
Script de serveur de développement.

Lance l'application FastAPI avec uvicorn sur APP_HOST/APP_PORT. Sans DEEPL_API_KEY, les
traductions échouent proprement (journalisées) et l'édition reste possible.
"""

import uvicorn

from cvfields.app.main import app
from cvfields.core.container import container


def main():
    """Point d'entrée principal du serveur de développement."""
    settings = container.settings
    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT, reload=False)


if __name__ == "__main__":
    main()

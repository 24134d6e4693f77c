"""
Configuration du client (Settings)
==================================

Rôle
----
- Centraliser les paramètres du client mafia (nom, bind local, URL du serveur de jeu, délais).
- Les valeurs par défaut conviennent pour un environnement de dev local.
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- Les services/routers importent `from mafia_client.config.settings import settings`.

Exemples de `.env`
------------------
APP_NAME="Mafia Client (Staging)"
PORT=8080
SERVER_WS_URL="ws://mafia.example.org/ws"
AUTO_ADVANCE_DELAY=2.5
LOG_LEVEL="DEBUG"
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Nom du service (apparaît dans /health)
    APP_NAME: str = "Mafia Client"
    # Bind réseau du pont local (FastAPI / Uvicorn)
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # Serveur de jeu autoritaire (enveloppes {"type", "payload"} en JSON)
    SERVER_WS_URL: str = "ws://localhost:3001/ws"

    # Délai (secondes) avant que l'hôte relance la phase suivante
    AUTO_ADVANCE_DELAY: float = 2.0

    # Taille max du journal d'actions gardé en mémoire par le store
    ACTION_JOURNAL_LIMIT: int = 500

    LOG_LEVEL: str = "INFO"

    # Frontends autorisés (CORS)
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Paramétrage pydantic-settings :
    # - lit le fichier .env (UTF-8) si présent
    # - ignore les clés supplémentaires pour éviter les erreurs
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Instance unique importable partout : `settings`
settings = Settings()

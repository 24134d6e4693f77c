"""
Application FastAPI — Point d'entrée du client mafia
====================================================

Rôle
----
- Instancie l'app FastAPI (pont local entre le serveur de jeu et l'affichage),
- configure le logging et le CORS pour le front,
- monte les routeurs (REST + WebSocket),
- ferme proprement la session de jeu active à l'arrêt.

Lancement
---------
    uvicorn mafia_client.main:app --host 127.0.0.1 --port 8000
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mafia_client.config.settings import settings
from mafia_client.routes.game import router as game_router
from mafia_client.routes.health import router as health_router
from mafia_client.routes.websocket import router as ws_router
from mafia_client.services.session import close_active_session

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s starting, game server: %s", settings.APP_NAME, settings.SERVER_WS_URL)
    yield
    await close_active_session()
    logger.info("%s shutting down.", settings.APP_NAME)


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# ⚠️ Le middleware CORS doit être ajouté AVANT les include_router.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(game_router)
app.include_router(ws_router)                  # WebSocket endpoint (/ws/game)


@app.get("/")
async def root():
    """Ping basique."""
    return {"ok": True, "service": "mafia-client"}

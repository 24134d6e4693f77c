"""
Module routes/health.py
Rôle:
- Endpoint de santé (service OK + état sommaire de la session de jeu).
"""
from fastapi import APIRouter

from mafia_client.config.settings import settings
from mafia_client.services.session import get_active_session

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health():
    """Renvoie un OK minimal avec le nom de service configuré."""
    session = get_active_session()
    return {
        "ok": True,
        "service": settings.APP_NAME,
        "session": session.status() if session else None,
    }

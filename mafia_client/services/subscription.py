"""
Service: subscription.py
- Poignée d'abonnement explicite (transport ou store).
- `unsubscribe()` idempotent : la libération n'a lieu qu'une seule fois.
- Utilisable en gestionnaire de contexte (`with store.subscribe(...):`).
"""
from __future__ import annotations

from threading import RLock
from typing import Callable, Optional


class Subscription:
    def __init__(self, release: Callable[[], None], label: str = "") -> None:
        self._lock = RLock()
        self._release: Optional[Callable[[], None]] = release
        self.label = label

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> bool:
        """Libère l'abonnement. Renvoie False s'il l'était déjà."""
        with self._lock:
            release, self._release = self._release, None
        if release is None:
            return False
        release()
        return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"<Subscription {self.label or '?'} {state}>"

"""
Utilitaires d'encodage des enveloppes WS (rapides) basés sur orjson.
- encode_envelope(type, payload) → str  {"type": ..., "payload": {...}}
- decode_envelope(text) → (type, payload) | None (None si trame non JSON / sans type)

Attention:
- orjson renvoie des bytes ; on décode en UTF-8 pour `send_text`.
"""
from typing import Any, Dict, Optional, Tuple

import orjson as json


def encode_envelope(event_type: str, payload: Optional[Dict[str, Any]] = None) -> str:
    return json.dumps({"type": event_type, "payload": payload or {}}).decode("utf-8")


def decode_envelope(raw: Any) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Décode une trame entrante ; renvoie None si elle n'est pas exploitable."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(msg, dict):
        return None
    event_type = msg.get("type")
    if not isinstance(event_type, str) or not event_type:
        return None
    payload = msg.get("payload")
    return event_type, payload if isinstance(payload, dict) else {}

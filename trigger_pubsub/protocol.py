"""Protocol message shapes for the HTTP and WebSocket bridge (health, subscribe, events)."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ---- Health ----

@dataclass
class HealthResponse:
    """Response for GET /health."""
    uptime_sec: float
    topics: int
    subscriptions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_sec": int(self.uptime_sec),
            "topics": self.topics,
            "subscriptions": self.subscriptions,
        }


# ---- Publish ----

@dataclass
class PublishedResponse:
    """Response for POST /publish."""
    status: str = "published"
    trigger: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def stats_response(topics: Dict[str, Dict[str, Any]], metrics: Dict[str, Dict[str, int]]) -> Dict[str, Any]:
    """Response for GET /stats."""
    return {"topics": topics, "metrics": metrics}


# ---- WebSocket: Server → Client ----

# Error codes (use with ws_error)
ERROR_BAD_REQUEST = "BAD_REQUEST"
ERROR_UNKNOWN_SUBSCRIPTION = "UNKNOWN_SUBSCRIPTION"
ERROR_TRANSPORT = "TRANSPORT_ERROR"
ERROR_INTERNAL = "INTERNAL"


def ws_ts() -> str:
    """Current UTC timestamp in ISO 8601 (e.g. 2025-08-25T10:00:00Z)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ws_ack(
    request_id: Optional[str],
    ts: str,
    subscription_id: Optional[int] = None,
    trigger: Optional[str] = None,
) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "ack", "status": "ok", "ts": ts}
    if request_id is not None:
        out["request_id"] = request_id
    if subscription_id is not None:
        out["subscription_id"] = subscription_id
    if trigger is not None:
        out["trigger"] = trigger
    return out


def ws_event(subscription_id: int, trigger: str, message: Any, ts: str) -> Dict[str, Any]:
    return {
        "type": "event",
        "subscription_id": subscription_id,
        "trigger": trigger,
        "message": message,
        "ts": ts,
    }


def ws_error(request_id: Optional[str], code: str, message: str, ts: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "error",
        "error": {"code": code, "message": message},
        "ts": ts,
    }
    if request_id is not None:
        out["request_id"] = request_id
    return out


def ws_pong(request_id: str, ts: str) -> Dict[str, Any]:
    return {"type": "pong", "request_id": request_id, "ts": ts}

"""HTTP server: health, stats, publish. WebSocket: ping, subscribe, unsubscribe, publish over TriggerPubSub."""

from dotenv import load_dotenv
load_dotenv()

import json
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from trigger_pubsub import (
    PubSubConfig,
    TransportError,
    TriggerPubSub,
    UnknownSubscriptionError,
)
from trigger_pubsub.observability import get_logger
from trigger_pubsub.protocol import (
    HealthResponse,
    PublishedResponse,
    stats_response,
    ws_ack,
    ws_error,
    ws_event,
    ws_pong,
    ws_ts,
    ERROR_BAD_REQUEST,
    ERROR_UNKNOWN_SUBSCRIPTION,
    ERROR_TRANSPORT,
    ERROR_INTERNAL,
)

pubsub = TriggerPubSub(config=PubSubConfig.from_env())
logger = get_logger("trigger_pubsub.server")
_start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _start_time
    _start_time = time.time()
    yield
    await pubsub.close()


app = FastAPI(title="Trigger Pub-Sub API", lifespan=lifespan)
router = APIRouter(prefix="/api/v1")


# ---- Health ----

@router.get("/health")
def health() -> JSONResponse:
    """GET /health → { uptime_sec, topics, subscriptions }."""
    uptime = time.time() - _start_time
    body = HealthResponse(
        uptime_sec=uptime,
        topics=pubsub.registry.topic_count(),
        subscriptions=pubsub.registry.subscription_count(),
    ).to_dict()
    return JSONResponse(content=body, status_code=200)


# ---- Stats ----

@router.get("/stats")
def stats() -> JSONResponse:
    """GET /stats → { topics: { name: { subscribers, status, messages } }, metrics }."""
    body = stats_response(pubsub.registry.topics(), pubsub.registry.metrics.snapshot())
    return JSONResponse(content=body, status_code=200)


# ---- Publish ----

class PublishBody(BaseModel):
    trigger: str
    message: Any = None
    options: Optional[Dict[str, Any]] = None


@router.post("/publish")
async def publish(body: PublishBody) -> JSONResponse:
    """POST /publish { trigger, message, options? } → 200 { status: published, trigger } or 502."""
    trigger = (body.trigger or "").strip()
    if not trigger:
        return JSONResponse(content={"error": "trigger is required"}, status_code=400)
    try:
        await pubsub.publish(trigger, body.message, body.options)
    except TransportError as e:
        return JSONResponse(
            content={"error": str(e), "trigger": trigger},
            status_code=502,
        )
    return JSONResponse(
        content=PublishedResponse(trigger=trigger).to_dict(),
        status_code=200,
    )


# ---- WebSocket (ping, subscribe, unsubscribe, publish) ----

def _make_event_callback(websocket: WebSocket, trigger: str, holder: Dict[str, int]):
    """Callback that forwards each delivered message to the websocket as an event frame."""
    async def on_message(message: Any) -> None:
        await websocket.send_json(ws_event(holder["subscription_id"], trigger, message, ws_ts()))
    return on_message


@router.websocket("/ws")
async def websocket_handler(websocket: WebSocket) -> None:
    """
    WebSocket endpoint. Messages: ping, subscribe, unsubscribe, publish.
    Server replies: pong, ack, event, error.
    """
    await websocket.accept()
    current_subscriptions: set = set()
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Invalid JSON", ws_ts()))
                continue
            if not isinstance(msg, dict):
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Expected a JSON object", ws_ts()))
                continue
            msg_type = msg.get("type")
            request_id = msg.get("request_id")

            if msg_type == "ping":
                await websocket.send_json(ws_pong(msg.get("request_id", ""), ws_ts()))
                continue

            if msg_type == "subscribe":
                trigger = msg.get("trigger")
                options = msg.get("options")
                if not trigger or not isinstance(trigger, str) or (options is not None and not isinstance(options, dict)):
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "subscribe requires trigger (and options must be an object)",
                        ws_ts(),
                    ))
                    continue
                holder: Dict[str, int] = {}
                try:
                    subscription_id = await pubsub.subscribe(
                        trigger, _make_event_callback(websocket, trigger, holder), options,
                    )
                except TransportError as e:
                    await websocket.send_json(ws_error(request_id, ERROR_TRANSPORT, str(e), ws_ts()))
                    continue
                holder["subscription_id"] = subscription_id
                current_subscriptions.add(subscription_id)
                await websocket.send_json(ws_ack(request_id, ws_ts(), subscription_id=subscription_id, trigger=trigger))
                continue

            if msg_type == "unsubscribe":
                subscription_id = msg.get("subscription_id")
                if not isinstance(subscription_id, int) or isinstance(subscription_id, bool):
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "unsubscribe requires integer subscription_id",
                        ws_ts(),
                    ))
                    continue
                if subscription_id not in current_subscriptions:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_UNKNOWN_SUBSCRIPTION,
                        str(UnknownSubscriptionError(subscription_id)),
                        ws_ts(),
                    ))
                    continue
                current_subscriptions.discard(subscription_id)
                try:
                    pubsub.unsubscribe(subscription_id)
                except UnknownSubscriptionError as e:
                    await websocket.send_json(ws_error(request_id, ERROR_UNKNOWN_SUBSCRIPTION, str(e), ws_ts()))
                    continue
                await websocket.send_json(ws_ack(request_id, ws_ts(), subscription_id=subscription_id))
                continue

            if msg_type == "publish":
                trigger = msg.get("trigger")
                options = msg.get("options")
                if not trigger or not isinstance(trigger, str) or "message" not in msg:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "publish requires trigger and message",
                        ws_ts(),
                    ))
                    continue
                try:
                    await pubsub.publish(trigger, msg["message"], options)
                except TransportError as e:
                    await websocket.send_json(ws_error(request_id, ERROR_TRANSPORT, str(e), ws_ts()))
                    continue
                await websocket.send_json(ws_ack(request_id, ws_ts(), trigger=trigger))
                continue

            await websocket.send_json(ws_error(
                request_id, ERROR_BAD_REQUEST,
                f"Unknown type: {msg_type!r}",
                ws_ts(),
            ))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("websocket_failed", extra={"error": str(e)})
        try:
            await websocket.send_json(ws_error(
                None, ERROR_INTERNAL,
                f"Unexpected server error: {e!s}",
                ws_ts(),
            ))
        except Exception:
            pass
    finally:
        for subscription_id in current_subscriptions:
            try:
                pubsub.unsubscribe(subscription_id)
            except UnknownSubscriptionError:
                pass


app.include_router(router)

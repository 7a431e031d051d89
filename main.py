# FILE: main.py
"""
NTPU LINE Bot Core - FastAPI Application

Endpoints:
- POST /webhook          inbound messaging-platform events -> reply messages
- GET  /health           liveness + enabled features
- GET  /metrics          in-process counter snapshot
- GET  /usage/{chat_id}  both limiters' usage stats for one chat

Signature verification and the reply transport belong to the platform SDK;
this app returns the replies it would send as JSON.
"""
import os
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from app.bot.context import RequestContext
from app.bot.mention import Mentionee
from app.bot.messages import Message
from app.container import Container, build_container

logger = logging.getLogger(__name__)

app = FastAPI(
    title="NTPU LINE Bot",
    version="1.0.0",
    description="Keyword routing, LLM intent fallback and two-tier rate limiting for the NTPU LINE bot",
)


# ====== STARTUP ======

@app.on_event("startup")
async def on_startup():
    container = getattr(app.state, "container", None)
    if container is None:
        container = build_container()
        app.state.container = container
    container.start()

    settings = container.settings
    logger.info(f"[startup] modules: {container.registry.names()}")
    if container.processor.nlu_enabled():
        logger.info(f"[startup] NLU: [OK] providers={container.intent_parser.providers()}")
    else:
        logger.info("[startup] NLU: [X] disabled (keyword-only mode)")
    logger.info(
        f"[startup] limits: user burst={settings.user_rate_burst} refill={settings.user_rate_refill}/s, "
        f"llm burst={settings.llm_burst_tokens} refill={settings.llm_refill_per_hour}/h "
        f"daily={settings.llm_daily_limit}"
    )


@app.on_event("shutdown")
async def on_shutdown():
    container = getattr(app.state, "container", None)
    if container is not None:
        await container.stop()
        logger.info("[shutdown] limiter cleanup stopped")


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return container


# ====== MODELS ======

class EventSource(BaseModel):
    type: str = "user"
    userId: Optional[str] = None
    groupId: Optional[str] = None
    roomId: Optional[str] = None

    def chat_id(self) -> str:
        return self.groupId or self.roomId or self.userId or ""

    def is_group(self) -> bool:
        return self.type in ("group", "room")


class EventMentionee(BaseModel):
    index: int = 0
    length: int = 0
    type: str = "user"
    userId: Optional[str] = None
    isSelf: bool = False


class EventMention(BaseModel):
    mentionees: List[EventMentionee] = Field(default_factory=list)


class EventMessage(BaseModel):
    type: str = "text"
    text: Optional[str] = None
    mention: Optional[EventMention] = None

    def mentionees(self) -> List[Mentionee]:
        if self.mention is None:
            return []
        return [
            Mentionee(index=m.index, length=m.length, is_self=m.isSelf, type=m.type)
            for m in self.mention.mentionees
        ]


class EventPostback(BaseModel):
    data: str = ""


class WebhookEvent(BaseModel):
    type: str
    replyToken: Optional[str] = None
    source: EventSource = Field(default_factory=EventSource)
    message: Optional[EventMessage] = None
    postback: Optional[EventPostback] = None


class WebhookRequest(BaseModel):
    events: List[WebhookEvent] = Field(default_factory=list)


class EventReply(BaseModel):
    chat_id: str
    reply_token: Optional[str] = None
    messages: List[Dict[str, Any]]


class WebhookResponse(BaseModel):
    replies: List[EventReply]


# ====== WEBHOOK ======

async def handle_event(container: Container, event: WebhookEvent) -> List[Message]:
    chat_id = event.source.chat_id()
    ctx = RequestContext.create(
        chat_id=chat_id,
        user_id=event.source.userId or "",
        timeout=container.settings.webhook_timeout,
        is_group=event.source.is_group(),
    )
    processor = container.processor

    if event.type == "message":
        if event.message is None or event.message.type != "text":
            logger.debug(f"[webhook] ignoring non-text message from {chat_id}")
            return []
        return await processor.on_text(ctx, event.message.text or "", event.message.mentionees())
    if event.type == "postback":
        if event.postback is None:
            return []
        return await processor.on_postback(ctx, event.postback.data)

    logger.debug(f"[webhook] ignoring event type {event.type!r}")
    return []


@app.post("/webhook", response_model=WebhookResponse)
async def webhook(body: WebhookRequest, container: Container = Depends(get_container)):
    results = await asyncio.gather(
        *(handle_event(container, event) for event in body.events),
        return_exceptions=True,
    )

    replies: List[EventReply] = []
    for event, result in zip(body.events, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            # One failing event must not drop the replies for the others
            logger.error(f"[webhook] event {event.type} failed: {result!r}", exc_info=result)
            continue
        if not result:
            continue
        replies.append(EventReply(
            chat_id=event.source.chat_id(),
            reply_token=event.replyToken,
            messages=[m.to_dict() for m in result],
        ))
    return WebhookResponse(replies=replies)


# ====== OPS ======

@app.get("/health")
def health(container: Container = Depends(get_container)):
    return {
        "status": "ok",
        "modules": container.registry.names(),
        "nlu_enabled": container.processor.nlu_enabled(),
        "llm_providers": container.intent_parser.providers(),
    }


@app.get("/metrics")
def metrics(container: Container = Depends(get_container)):
    return {
        "counters": container.metrics.snapshot(),
        "rate_limit": {
            "user_active_keys": container.user_limiter.active_keys(),
            "llm_active_keys": container.llm_limiter.active_keys(),
        },
        "recent_failovers": [e.to_dict() for e in container.intent_parser.recent_events()],
    }


@app.get("/usage/{chat_id}")
def usage(chat_id: str, container: Container = Depends(get_container)):
    return {
        "chat_id": chat_id,
        "user": container.user_limiter.get_usage_stats(chat_id).to_dict(),
        "llm": container.llm_limiter.get_usage_stats(chat_id).to_dict(),
    }

"""
HTTP API for Session Hub

Thin FastAPI adapter over the session state: decodes requests, calls the
mutation/read API and encodes results. Also serves the push stream as
server-sent events.
"""

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
import logging
from typing import List, Optional
from datetime import datetime

from ..agents.coding_assistant import suggest_code
from ..agents.thinker import Thinker
from ..communication.event_fanout import QueueSubscriber, stream_events
from ..core.session_state import SessionState
from ..discovery.feed import DiscoveryFeed
from ..reasoning.backends import ReasoningBackend

logger = logging.getLogger(__name__)

class _Body(BaseModel):
    """Request bodies use camelCase keys; unknown keys are ignored."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

def _number_as_text(v):
    """Free text fields accept numbers and store their string form."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v

class AgentBody(_Body):
    id: Optional[str] = None
    name: Optional[str] = None
    emoji: Optional[str] = None
    focus: Optional[str] = None
    intro: Optional[str] = None
    source: Optional[str] = None
    model: Optional[str] = None
    ip: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None

class TopicBody(_Body):
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    problem: Optional[str] = None
    category: Optional[str] = None
    category_label: Optional[str] = None
    approach: Optional[str] = None
    needed: Optional[str] = None
    committed_bots: Optional[List[str]] = None

class CodeBody(_Body):
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    text: Optional[str] = None

    @field_validator('text', mode='before')
    @classmethod
    def coerce_text(cls, v):
        return _number_as_text(v)

class MessageBody(_Body):
    from_id: Optional[str] = None
    from_name: Optional[str] = None
    to_id: Optional[str] = None
    to_name: Optional[str] = None
    text: Optional[str] = None

    @field_validator('text', mode='before')
    @classmethod
    def coerce_text(cls, v):
        return _number_as_text(v)

class HardwareBody(_Body):
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    topic_problem: Optional[str] = None
    type: Optional[str] = None
    content: Optional[str] = None

    @field_validator('content', mode='before')
    @classmethod
    def coerce_content(cls, v):
        return _number_as_text(v)

class AgentRefBody(_Body):
    agent_id: Optional[str] = None

class CurrentTopicBody(_Body):
    topic_id: Optional[str] = None

class SuggestBody(_Body):
    request: Optional[str] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None

class SessionAPI:
    """
    FastAPI application exposing the session.

    Mutation routes answer ``{"ok": bool}``; malformed bodies get HTTP 400.
    """

    def __init__(self, state: SessionState, thinker: Optional[Thinker] = None,
                 discovery: Optional[DiscoveryFeed] = None,
                 backend: Optional[ReasoningBackend] = None,
                 assistant_log: Optional[str] = None,
                 public_url: Optional[str] = None,
                 keepalive: float = 15.0):
        """
        Initialize the API.

        Args:
            state: Session state
            thinker: Reasoning loop (for trigger and status)
            discovery: Discovery feed (for status)
            backend: Reasoning backend used by the coding assistant
            assistant_log: JSONL log for assistant interactions
            public_url: Public base URL used in the invitation
            keepalive: Seconds between keepalive comments on idle streams
        """
        self.state = state
        self.thinker = thinker
        self.discovery = discovery
        self.backend = backend
        self.assistant_log = assistant_log
        self.public_url = public_url
        self.keepalive = keepalive

        self.app = FastAPI(title="Session Hub")
        self._setup_routes()

    def get_status(self):
        """Lightweight status descriptor."""
        return {
            "thinker_enabled": bool(self.thinker and self.thinker.running),
            "thinker_busy": bool(self.thinker and self.thinker.busy),
            "backend": self.backend.name if self.backend else None,
            "gateways_count": self.discovery.live_connections if self.discovery else 0,
            "gateways_known": len(self.discovery.clients) if self.discovery else 0,
            "registry_url": self.discovery.registry_url if self.discovery else None,
            "observers": self.state.fanout.subscriber_count,
        }

    def _setup_routes(self):
        """Setup FastAPI routes."""
        app = self.app
        state = self.state

        @app.exception_handler(RequestValidationError)
        async def bad_request(request: Request, exc: RequestValidationError):
            logger.debug(f"Rejected request to {request.url.path}: {exc.errors()}")
            return JSONResponse(status_code=400, content={"error": "Bad request"})

        @app.get("/api/stream")
        async def stream():
            """Push stream: one snapshot, then every event."""
            subscriber = QueueSubscriber()
            state.subscribe(subscriber)
            return StreamingResponse(
                stream_events(state.fanout, subscriber, keepalive=self.keepalive),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                },
            )

        @app.get("/api/snapshot")
        async def snapshot():
            return state.snapshot()

        @app.get("/api/memory")
        async def memory():
            return state.context_for_agents()

        @app.get("/api/code")
        async def get_code():
            return {
                "buffer": state.code_buffer,
                "edits": state.snapshot()["code_edits"],
                "current_topic_id": state.current_topic_id,
            }

        @app.post("/api/agent")
        async def register_agent(body: Optional[AgentBody] = Body(default=None)):
            body = body or AgentBody()
            ok = state.register_agent(
                body.id, name=body.name, emoji=body.emoji, focus=body.focus,
                intro=body.intro, source=body.source, model=body.model, ip=body.ip,
                country=body.country, region=body.region, city=body.city,
            )
            return {"ok": ok}

        @app.post("/api/topic")
        async def propose_topic(body: Optional[TopicBody] = Body(default=None)):
            body = body or TopicBody()
            ok = state.propose_topic(
                body.agent_id, title=body.title, body=body.body, problem=body.problem,
                agent_name=body.agent_name, committed_bots=body.committed_bots,
                category=body.category, category_label=body.category_label,
                approach=body.approach, needed=body.needed,
            )
            return {"ok": ok}

        @app.post("/api/topic/current")
        async def set_current_topic(body: Optional[CurrentTopicBody] = Body(default=None)):
            body = body or CurrentTopicBody()
            return {"ok": state.set_current_topic(body.topic_id)}

        @app.post("/api/topic/next")
        async def advance_topic():
            return {"ok": state.advance_topic()}

        @app.post("/api/topic/{topic_id}/vote")
        async def vote_topic(topic_id: str, body: Optional[AgentRefBody] = Body(default=None)):
            body = body or AgentRefBody()
            return {"ok": state.vote_topic(topic_id, body.agent_id)}

        @app.post("/api/topic/{topic_id}/commit")
        async def commit_to_topic(topic_id: str, body: Optional[AgentRefBody] = Body(default=None)):
            body = body or AgentRefBody()
            return {"ok": state.commit_to_topic(topic_id, body.agent_id)}

        @app.post("/api/code")
        async def append_code(body: Optional[CodeBody] = Body(default=None)):
            body = body or CodeBody()
            return {"ok": state.append_code(body.agent_id, body.text, agent_name=body.agent_name)}

        @app.post("/api/message")
        async def post_message(body: Optional[MessageBody] = Body(default=None)):
            body = body or MessageBody()
            ok = state.post_message(body.from_id, body.text, from_name=body.from_name,
                                    to_id=body.to_id, to_name=body.to_name)
            return {"ok": ok}

        @app.post("/api/hardware")
        async def post_hardware(body: Optional[HardwareBody] = Body(default=None)):
            body = body or HardwareBody()
            ok = state.post_hardware_design(
                body.agent_id, body.content, design_type=body.type,
                agent_name=body.agent_name, topic_problem=body.topic_problem,
            )
            return {"ok": ok}

        @app.api_route("/api/thinker/trigger", methods=["GET", "POST"])
        async def trigger_thinker():
            if not self.thinker or not self.thinker.running:
                return {"ok": False, "error": "Thinker not running"}
            return {"ok": self.thinker.trigger()}

        @app.post("/api/assistant/suggest")
        async def assistant_suggest(apply: Optional[str] = None,
                                    body: Optional[SuggestBody] = Body(default=None)):
            body = body or SuggestBody()
            out = await suggest_code(state.context_for_agents(), body.request,
                                     self.backend, self.assistant_log)
            applied = bool(apply == "1" and out.get("suggestion") and body.agent_id)
            if applied:
                applied = state.append_code(body.agent_id, out["suggestion"],
                                            agent_name=body.agent_name)
            return {**out, "applied": applied}

        @app.get("/api/invitation")
        async def invitation():
            return state.invitation(self.public_url)

        @app.get("/api/status")
        async def status():
            return self.get_status()

        @app.get("/api/health")
        async def health():
            return {"ok": True, "ts": datetime.now().isoformat()}

        @app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
        async def not_found(path: str):
            return JSONResponse(status_code=404, content={"error": "Not found"})

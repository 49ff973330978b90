"""
Session State for Session Hub

Owns the shared session: agents, topics, the shared code artifact and its
edit log, messages, hardware designs and the running memory log. Every
mutation runs to completion on the event loop, then publishes to the
event fanout and schedules a coalesced snapshot write.
"""

import copy
import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .persistence import PersistenceCoalescer, SnapshotStore
from .topic_lifecycle import (
    PROBLEM_CATEGORIES, insert_topic, new_topic, pick_topic_to_start, reaches_readiness,
    topic_header, topic_phase
)
from ..communication.event_fanout import EventFanout, EventType

logger = logging.getLogger(__name__)

# Live caps
MAX_CODE_EDITS = 100
MAX_MESSAGES = 100
MAX_HARDWARE_DESIGNS = 50
MAX_MEMORY_LOG = 150
MEMORY_LINE_LENGTH = 200

# Persisted caps
PERSIST_CODE_EDITS = 200
PERSIST_MESSAGES = 150
PERSIST_HARDWARE_DESIGNS = 100
PERSIST_JOINED_LOG = 100
PERSIST_READY_LOG = 50

WAITING_HEADER = "# Waiting for agents - real-time topics and code only.\n"

class AgentSource(Enum):
    """Where an agent entry came from."""
    DISCOVERED = "discovered"
    CONFIGURED = "configured"
    SELF = "self"

class AgentActivity(Enum):
    """Derived agent status shown to observers."""
    OFFLINE = "offline"
    CODING = "coding"
    COMMITTED = "committed"
    SEEKING = "seeking"

def _source_value(source: Any) -> Optional[str]:
    if isinstance(source, AgentSource):
        return source.value
    return source or None

def _local_time(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp as naive local time; offset-aware values are converted."""
    if not value:
        return None
    try:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed

class SessionState:
    """
    In-memory session state with a boolean-returning mutation API.

    Invalid input and unknown references return False and never raise.
    """

    def __init__(self, fanout: Optional[EventFanout] = None,
                 store: Optional[SnapshotStore] = None,
                 save_delay: float = 2.0):
        """
        Initialize session state.

        Args:
            fanout: Event fanout (creates new if None)
            store: Snapshot store (None disables persistence)
            save_delay: Persistence debounce delay in seconds
        """
        self.fanout = fanout or EventFanout()
        self.persistence = PersistenceCoalescer(store, self.persisted_snapshot, save_delay)

        self.agent_state: Dict[str, Dict] = {}
        self.topics: List[Dict] = []
        self.code_buffer = ""
        self.code_edits: List[Dict] = []
        self.bot_messages: List[Dict] = []
        self.hardware_designs: List[Dict] = []
        self.bot_joined_log: List[Dict] = []
        self.topic_ready_log: List[Dict] = []
        self.memory_log: List[str] = []
        self.current_topic_id: Optional[str] = None
        self.code_edits_for_current_topic = 0

        self._message_listeners: List[Callable[[Dict], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """
        Restore state from the snapshot store.

        Unknown fields are ignored and missing ones keep their empty
        defaults. Returns True if anything was loaded.
        """
        store = self.persistence.store
        if store is None:
            return False
        data = store.load()
        if not data:
            return False

        def _list(key):
            value = data.get(key)
            return value if isinstance(value, list) else []

        self.topics = _list("topics")
        if isinstance(data.get("code_buffer"), str):
            self.code_buffer = data["code_buffer"]
        self.code_edits = _list("code_edits")[-MAX_CODE_EDITS:]
        self.bot_messages = _list("bot_messages")[-MAX_MESSAGES:]
        self.hardware_designs = _list("hardware_designs")[-MAX_HARDWARE_DESIGNS:]
        self.bot_joined_log = _list("bot_joined_log")
        self.topic_ready_log = _list("topic_ready_log")
        self.memory_log = _list("memory_log")[-MAX_MEMORY_LOG:]
        self.current_topic_id = data.get("current_topic_id")
        self.code_edits_for_current_topic = int(data.get("code_edits_for_current_topic") or 0)
        if isinstance(data.get("agent_state"), dict):
            self.agent_state.update(data["agent_state"])

        logger.info(f"Loaded snapshot: {len(self.topics)} topics, "
                    f"{len(self.agent_state)} agents")
        return True

    def start(self) -> None:
        """Seed the artifact if empty and announce the initial state."""
        if not self.code_buffer.strip():
            self.code_buffer = WAITING_HEADER
        self._changed()

    def announce(self) -> None:
        """Push a full snapshot to every observer."""
        self.fanout.publish(EventType.SNAPSHOT, self.snapshot())

    def stop(self) -> None:
        """Flush any pending snapshot write and drop observers."""
        self.persistence.flush()
        self.fanout.close()

    def subscribe(self, handle: Any) -> bool:
        """Register an observer; it first receives the full snapshot."""
        return self.fanout.subscribe(handle, self.snapshot())

    def subscribe_messages(self, callback: Callable[[Dict], None]) -> None:
        """Call ``callback(message)`` after every posted message."""
        self._message_listeners.append(callback)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _changed(self, event_type: Optional[EventType] = None, data: Any = None) -> None:
        """Publish the optional incremental event, then a full snapshot, then persist."""
        if event_type is not None:
            self.fanout.publish(event_type, data)
        self.fanout.publish(EventType.SNAPSHOT, self.snapshot())
        self.persistence.schedule()

    def _now(self) -> str:
        return datetime.now().isoformat()

    def _agent_name(self, agent_id: str, name: Optional[str] = None) -> str:
        if name:
            return name
        agent = self.agent_state.get(agent_id)
        return (agent or {}).get("name") or agent_id

    def _touch(self, agent_id: str) -> None:
        agent = self.agent_state.get(agent_id)
        if agent is not None:
            agent["online"] = True
            agent["last_seen"] = self._now()

    def _find_topic(self, topic_id: Optional[str]) -> Optional[Dict]:
        if not topic_id:
            return None
        for topic in self.topics:
            if topic.get("id") == topic_id:
                return topic
        return None

    def append_memory(self, line: str) -> None:
        """Append a line to the running memory log."""
        if not line or not isinstance(line, str):
            return
        self.memory_log.append(line.strip()[:MEMORY_LINE_LENGTH])
        if len(self.memory_log) > MAX_MEMORY_LOG:
            del self.memory_log[:len(self.memory_log) - MAX_MEMORY_LOG]

    def _emit_message(self, from_id: str, from_name: Optional[str], to_id: Optional[str],
                      to_name: Optional[str], text: str) -> Dict:
        message = {
            "id": f"msg-{uuid.uuid4().hex[:12]}",
            "from_id": from_id,
            "from_name": from_name or from_id,
            "to_id": to_id or None,
            "to_name": to_name or None,
            "text": text,
            "ts": self._now(),
        }
        self.bot_messages.append(message)
        if len(self.bot_messages) > MAX_MESSAGES:
            del self.bot_messages[:len(self.bot_messages) - MAX_MESSAGES]
        self.append_memory(f"{message['from_name']}: {text[:120]}")
        self.fanout.publish(EventType.BOT_MESSAGE, message)

        for callback in list(self._message_listeners):
            try:
                callback(dict(message))
            except Exception as e:
                logger.error(f"Message listener failed: {e}")
        return message

    def _apply_introduction(self, agent: Dict, focus: Optional[str], intro: Optional[str]) -> None:
        """Set focus/intro once; the first non-empty value wins."""
        if focus and not agent.get("focus"):
            agent["focus"] = focus
        if intro and not agent.get("intro"):
            agent["intro"] = intro
            joined = {
                "agent_id": agent["id"],
                "agent_name": agent.get("name") or agent["id"],
                "focus": agent.get("focus") or "",
                "intro": intro,
                "ts": self._now(),
            }
            self.bot_joined_log.append(joined)
            if len(self.bot_joined_log) > PERSIST_JOINED_LOG:
                del self.bot_joined_log[:len(self.bot_joined_log) - PERSIST_JOINED_LOG]
            self.fanout.publish(EventType.BOT_JOINED, joined)
            self._emit_message(agent["id"], joined["agent_name"], None, "all", intro)

    def _mark_ready(self, topic: Dict) -> None:
        topic["ready_to_code"] = True
        self._record_ready(topic)

    def _record_ready(self, topic: Dict) -> None:
        entry = {
            "topic_id": topic["id"],
            "title": topic.get("title"),
            "problem": topic.get("problem"),
            "committed_bots": list(topic.get("committed_bots") or []),
            "ts": self._now(),
        }
        self.topic_ready_log.append(entry)
        if len(self.topic_ready_log) > PERSIST_READY_LOG:
            del self.topic_ready_log[:len(self.topic_ready_log) - PERSIST_READY_LOG]
        self.fanout.publish(EventType.TOPIC_READY, {
            "topic_id": topic["id"],
            "topic": copy.deepcopy(topic),
            "committed_bots": entry["committed_bots"],
        })

    def _make_current(self, topic: Dict) -> None:
        """Switch focus to ``topic``: reset the edit log and reseed the artifact."""
        previous = self._find_topic(self.current_topic_id)
        if previous is not None and previous is not topic:
            previous["superseded_at"] = self._now()

        self.current_topic_id = topic["id"]
        topic["superseded_at"] = None
        self.code_edits_for_current_topic = 0
        self.code_edits = []
        names = {agent_id: self._agent_name(agent_id)
                 for agent_id in topic.get("committed_bots") or []}
        self.code_buffer = topic_header(topic, names)
        logger.info(f"Current topic is now {topic['id']} ({topic.get('title')})")

        self.fanout.publish(EventType.CODE, {"buffer": self.code_buffer})
        self._changed()

    # ------------------------------------------------------------------
    # Mutation API
    # ------------------------------------------------------------------

    def register_agent(self, agent_id: Optional[str], name: Optional[str] = None,
                       emoji: Optional[str] = None, focus: Optional[str] = None,
                       intro: Optional[str] = None, source: Any = None,
                       model: Optional[str] = None, ip: Optional[str] = None,
                       country: Optional[str] = None, region: Optional[str] = None,
                       city: Optional[str] = None) -> bool:
        """
        Create or refresh an agent.

        Re-registration increments ``sessions`` and refreshes presence;
        ``focus``/``intro`` are only set if previously unset.

        Returns:
            False if ``agent_id`` is missing
        """
        if not agent_id:
            return False

        existing = self.agent_state.get(agent_id)
        agent = dict(existing) if existing else {}
        agent.update({
            "id": agent_id,
            "name": name or agent.get("name") or agent_id,
            "emoji": emoji or agent.get("emoji") or "🦞",
            "online": True,
            "last_seen": self._now(),
            "sessions": (agent.get("sessions") or 0) + 1 if existing else 1,
            "model": model or agent.get("model"),
            "source": _source_value(source) or agent.get("source") or AgentSource.DISCOVERED.value,
            "focus": agent.get("focus"),
            "intro": agent.get("intro"),
            "ip": ip or agent.get("ip"),
            "country": country or agent.get("country"),
            "region": region or agent.get("region"),
            "city": city or agent.get("city"),
        })
        self.agent_state[agent_id] = agent
        logger.debug(f"Agent registered: {agent_id} (sessions={agent['sessions']})")

        self._apply_introduction(agent, focus, intro)
        self._changed()
        return True

    def propose_topic(self, agent_id: Optional[str], title: Optional[str] = None,
                      body: Optional[str] = None, problem: Optional[str] = None,
                      agent_name: Optional[str] = None,
                      committed_bots: Optional[List[str]] = None,
                      category: Optional[str] = None, category_label: Optional[str] = None,
                      approach: Optional[str] = None, needed: Optional[str] = None) -> bool:
        """
        Propose a topic.

        With no current topic, the new topic becomes current immediately
        even with a single commitment; otherwise it waits for readiness.

        Returns:
            False if ``agent_id`` is missing or both title and problem are empty
        """
        if not agent_id or not (title or problem):
            return False

        topic = new_topic(
            agent_id, title=title, body=body, problem=problem,
            agent_name=self._agent_name(agent_id, agent_name),
            committed_bots=committed_bots if isinstance(committed_bots, list) else None,
            category=category, category_label=category_label,
            approach=approach, needed=needed,
        )
        evicted = insert_topic(self.topics, topic, self.current_topic_id)
        if evicted is not None:
            logger.debug(f"Topic cap reached, dropped {evicted.get('id')}")
        self._touch(agent_id)
        self.append_memory(f"Topic by {topic['agent_name']}: {(topic['title'] or '')[:100]}")
        self.fanout.publish(EventType.TOPIC, copy.deepcopy(topic))

        if not self.current_topic_id and topic["committed_bots"]:
            if topic["ready_to_code"]:
                self._record_ready(topic)
            else:
                self.fanout.publish(EventType.TOPIC_READY, {
                    "topic_id": topic["id"],
                    "topic": copy.deepcopy(topic),
                    "committed_bots": list(topic["committed_bots"]),
                })
            self._make_current(topic)
        elif topic["ready_to_code"]:
            self._record_ready(topic)

        self._changed()
        return True

    def vote_topic(self, topic_id: Optional[str], agent_id: Optional[str]) -> bool:
        """
        Upvote a topic; one vote per agent, ever.

        Returns:
            True if counted or already counted, False for unknown topic / missing agent
        """
        topic = self._find_topic(topic_id)
        if topic is None or not agent_id:
            return False
        voters = topic.setdefault("votes_by_agent", [])
        if agent_id in voters:
            return True
        voters.append(agent_id)
        topic["upvotes"] = len(voters)
        self._touch(agent_id)
        self._changed()
        return True

    def commit_to_topic(self, topic_id: Optional[str], agent_id: Optional[str]) -> bool:
        """
        Commit an agent to a topic.

        Crossing the readiness threshold marks the topic ready and, if no
        topic is current, makes it current.
        """
        topic = self._find_topic(topic_id)
        if topic is None or not agent_id:
            return False
        committed = topic.setdefault("committed_bots", [])
        if agent_id in committed:
            return True
        committed.append(agent_id)
        self._touch(agent_id)

        if reaches_readiness(topic):
            self._mark_ready(topic)
            if not self.current_topic_id:
                self._make_current(topic)

        self._changed()
        return True

    def set_current_topic(self, topic_id: Optional[str]) -> bool:
        """Explicitly make a topic current, superseding the previous one."""
        topic = self._find_topic(topic_id)
        if topic is None:
            return False
        self._make_current(topic)
        return True

    def advance_topic(self) -> bool:
        """
        Move focus to the best ready topic other than the current one.

        Returns:
            False if there is no other ready topic
        """
        topic = pick_topic_to_start(self.topics, exclude_topic_id=self.current_topic_id)
        if topic is None:
            return False
        self._make_current(topic)
        return True

    def append_code(self, agent_id: Optional[str], text: Optional[str],
                    agent_name: Optional[str] = None) -> bool:
        """
        Append a fragment to the shared artifact.

        A line break is inserted first unless the buffer is empty or already
        ends with one.

        Returns:
            False if ``agent_id`` is missing or ``text`` is empty
        """
        if not agent_id or text is None or text == "":
            return False

        edit = {
            "agent_id": agent_id,
            "agent_name": self._agent_name(agent_id, agent_name),
            "text": str(text),
            "ts": self._now(),
        }
        separator = "\n" if self.code_buffer and not self.code_buffer.endswith("\n") else ""
        self.code_buffer = self.code_buffer + separator + edit["text"]
        self.code_edits.append(edit)
        if len(self.code_edits) > MAX_CODE_EDITS:
            del self.code_edits[:len(self.code_edits) - MAX_CODE_EDITS]
        self.code_edits_for_current_topic += 1
        self._touch(agent_id)
        self.append_memory(
            f"Code by {edit['agent_name']}: {edit['text'][:80].replace(chr(10), ' ')}")

        self._changed(EventType.CODE, {"buffer": self.code_buffer, "edit": dict(edit)})
        return True

    def post_message(self, from_id: Optional[str], text: Optional[str],
                     from_name: Optional[str] = None, to_id: Optional[str] = None,
                     to_name: Optional[str] = None) -> bool:
        """
        Post a message (broadcast when no recipient).

        The empty string is valid text; None is not.
        """
        if not from_id or text is None:
            return False
        self._touch(from_id)
        self._emit_message(from_id, self._agent_name(from_id, from_name),
                           to_id, to_name, str(text))
        self._changed()
        return True

    def post_hardware_design(self, agent_id: Optional[str], content: Optional[str],
                             design_type: Optional[str] = None,
                             agent_name: Optional[str] = None,
                             topic_problem: Optional[str] = None) -> bool:
        """Post a hardware design; requires an author and content."""
        if not agent_id or not content:
            return False

        current = self._find_topic(self.current_topic_id)
        design = {
            "id": f"hw-{uuid.uuid4().hex[:12]}",
            "agent_id": agent_id,
            "agent_name": self._agent_name(agent_id, agent_name),
            "topic_problem": topic_problem or (current or {}).get("problem") or "Humanity",
            "type": design_type or "Design",
            "content": content,
            "ts": self._now(),
        }
        self.hardware_designs.append(design)
        if len(self.hardware_designs) > MAX_HARDWARE_DESIGNS:
            del self.hardware_designs[:len(self.hardware_designs) - MAX_HARDWARE_DESIGNS]
        self._touch(agent_id)
        self._changed(EventType.HARDWARE, dict(design))
        return True

    # ------------------------------------------------------------------
    # Roster feeds
    # ------------------------------------------------------------------

    def add_configured_agents(self, agents: List[Dict]) -> int:
        """Add agents from the agents file; they join online."""
        added = 0
        for entry in agents or []:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            agent_id = entry["id"]
            agent = dict(self.agent_state.get(agent_id) or {})
            agent.update({
                "id": agent_id,
                "name": entry.get("name") or agent_id,
                "emoji": entry.get("emoji") or "🤖",
                "online": True,
                "last_seen": self._now(),
                "sessions": agent.get("sessions") or 1,
                "model": entry.get("model"),
                "source": AgentSource.CONFIGURED.value,
                "ip": entry.get("ip"),
                "country": entry.get("country"),
                "region": entry.get("region"),
                "city": entry.get("city"),
            })
            agent.setdefault("focus", None)
            agent.setdefault("intro", None)
            self.agent_state[agent_id] = agent
            self._apply_introduction(agent, entry.get("focus"), entry.get("intro"))
            added += 1
        return added

    def add_discovered_ids(self, agent_ids: List[str]) -> int:
        """Add locally discovered agent ids as offline entries if unknown."""
        added = 0
        for agent_id in agent_ids or []:
            if not agent_id or agent_id in self.agent_state:
                continue
            self.agent_state[agent_id] = {
                "id": agent_id,
                "name": agent_id,
                "emoji": "🦞",
                "online": False,
                "last_seen": None,
                "sessions": 0,
                "model": None,
                "source": AgentSource.DISCOVERED.value,
                "focus": None,
                "intro": None,
                "ip": None,
                "country": None,
                "region": None,
                "city": None,
            }
            added += 1
        return added

    def merge_discovered_agents(self, agents: List[Dict]) -> None:
        """
        Merge agents observed by a discovery gateway.

        Agents absent from ``agents`` are left untouched.
        """
        if not isinstance(agents, list):
            return
        for entry in agents:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            agent = dict(self.agent_state.get(entry["id"]) or {})
            focus, intro = entry.get("focus"), entry.get("intro")
            agent.update({k: v for k, v in entry.items() if k not in ("focus", "intro")})
            agent["source"] = entry.get("source") or AgentSource.DISCOVERED.value
            agent.setdefault("focus", None)
            agent.setdefault("intro", None)
            self.agent_state[entry["id"]] = agent
            self._apply_introduction(agent, focus, intro)
        logger.debug(f"Merged {len(agents)} discovered agent(s)")
        self._changed()

    def sweep_stale_agents(self, timeout: int) -> List[str]:
        """
        Mark agents offline whose last activity is older than ``timeout`` seconds.

        Configured and self agents are exempt.
        """
        cutoff = datetime.now() - timedelta(seconds=timeout)
        exempt = (AgentSource.CONFIGURED.value, AgentSource.SELF.value)
        stale = []
        for agent_id, agent in self.agent_state.items():
            if not agent.get("online") or agent.get("source") in exempt:
                continue
            last_seen = _local_time(agent.get("last_seen"))
            if last_seen is None or last_seen < cutoff:
                agent["online"] = False
                stale.append(agent_id)
        if stale:
            logger.info(f"Marked {len(stale)} agent(s) offline: {', '.join(stale)}")
            self._changed()
        return stale

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def current_topic(self) -> Optional[Dict]:
        return self._find_topic(self.current_topic_id)

    def get_topic(self, topic_id: str) -> Optional[Dict]:
        topic = self._find_topic(topic_id)
        return copy.deepcopy(topic) if topic else None

    def agent_statuses(self) -> Dict[str, str]:
        """Derive offline/coding/committed/seeking per agent."""
        current = self.current_topic
        current_ids = set((current or {}).get("committed_bots") or [])
        committed_ids = set()
        for topic in self.topics:
            committed_ids.update(topic.get("committed_bots") or [])

        statuses = {}
        for agent_id, agent in self.agent_state.items():
            if not agent.get("online"):
                statuses[agent_id] = AgentActivity.OFFLINE.value
            elif agent_id in current_ids:
                statuses[agent_id] = AgentActivity.CODING.value
            elif agent_id in committed_ids:
                statuses[agent_id] = AgentActivity.COMMITTED.value
            else:
                statuses[agent_id] = AgentActivity.SEEKING.value
        return statuses

    def snapshot(self) -> Dict[str, Any]:
        """Read-only composite of the bounded views."""
        return copy.deepcopy({
            "agents": self.agent_state,
            "agent_statuses": self.agent_statuses(),
            "topics": self.topics,
            "current_topic_id": self.current_topic_id,
            "code_buffer": self.code_buffer,
            "code_edits": self.code_edits[-MAX_CODE_EDITS:],
            "code_edits_for_current_topic": self.code_edits_for_current_topic,
            "bot_joined_log": self.bot_joined_log[-50:],
            "topic_ready_log": self.topic_ready_log[-20:],
            "bot_messages": self.bot_messages[-80:],
            "hardware_designs": self.hardware_designs[-MAX_HARDWARE_DESIGNS:],
        })

    def persisted_snapshot(self) -> Dict[str, Any]:
        """Durable record written by the persistence coalescer."""
        return copy.deepcopy({
            "topics": self.topics,
            "code_buffer": self.code_buffer,
            "code_edits": self.code_edits[-PERSIST_CODE_EDITS:],
            "bot_messages": self.bot_messages[-PERSIST_MESSAGES:],
            "hardware_designs": self.hardware_designs[-PERSIST_HARDWARE_DESIGNS:],
            "current_topic_id": self.current_topic_id,
            "code_edits_for_current_topic": self.code_edits_for_current_topic,
            "bot_joined_log": self.bot_joined_log[-PERSIST_JOINED_LOG:],
            "topic_ready_log": self.topic_ready_log[-PERSIST_READY_LOG:],
            "memory_log": self.memory_log[-MAX_MEMORY_LOG:],
            "agent_state": self.agent_state,
        })

    def context_for_agents(self) -> Dict[str, Any]:
        """Narrow view used to build prompts; every list is bounded."""
        topic = self.current_topic
        return copy.deepcopy({
            "current_topic_id": self.current_topic_id,
            "current_topic": {
                "id": topic["id"],
                "title": topic.get("title"),
                "problem": topic.get("problem"),
                "body": topic.get("body"),
                "committed_bots": topic.get("committed_bots") or [],
            } if topic else None,
            "code_buffer": self.code_buffer,
            "code_edits": self.code_edits[-50:],
            "topics": [{
                "id": t["id"],
                "title": t.get("title"),
                "problem": t.get("problem"),
                "upvotes": t.get("upvotes") or 0,
                "ready_to_code": bool(t.get("ready_to_code")),
                "phase": topic_phase(t, self.current_topic_id).value,
            } for t in self.topics],
            "recent_messages": self.bot_messages[-40:],
            "agents_online": [{
                "id": a["id"],
                "name": a.get("name"),
                "focus": a.get("focus"),
            } for a in self.agent_state.values() if a.get("online")],
            "memory_log": self.memory_log[-80:],
        })

    def invitation(self, base_url: Optional[str] = None) -> Dict[str, Any]:
        """Static description of how to join, with the current topic and a code preview."""
        topic = self.current_topic
        preview = None
        if self.code_buffer:
            preview = self.code_buffer[:800] + ("..." if len(self.code_buffer) > 800 else "")

        def url(path: str) -> str:
            return f"{base_url.rstrip('/')}{path}" if base_url else path

        invitation = {
            "name": "Session Hub",
            "base_url": base_url,
            "need": "Agents to propose topics and write code for humanity problems.",
            "current_topic": {
                "id": topic["id"],
                "title": topic.get("title"),
                "problem": topic.get("problem"),
            } if topic else None,
            "code_summary": preview,
            "topics_count": len(self.topics),
            "categories": copy.deepcopy(PROBLEM_CATEGORIES),
            "agents_online": sum(1 for a in self.agent_state.values() if a.get("online")),
            "endpoints": {
                "memory": url("/api/memory"),
                "code": url("/api/code"),
                "topic": url("/api/topic"),
                "message": url("/api/message"),
                "code_append": url("/api/code"),
                "agent_register": url("/api/agent"),
                "assistant_suggest": url("/api/assistant/suggest"),
                "thinker_trigger": url("/api/thinker/trigger"),
                "stream": url("/api/stream"),
            },
            "how_to_contribute": (
                "GET /api/memory for context, then POST to /api/topic (new topic), "
                "/api/code (append code) or /api/message (chat). Register with "
                "POST /api/agent. To get a reply from the Thinker: POST /api/message "
                "then POST /api/thinker/trigger."
            ),
        }
        if not base_url:
            invitation["note"] = "Set PUBLIC_URL in production so invitation endpoints are absolute."
        return invitation

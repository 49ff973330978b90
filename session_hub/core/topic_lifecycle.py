"""
Topic Lifecycle for Session Hub

Topics move Proposed -> Ready -> Current -> Superseded. A topic becomes
ready once two distinct agents have committed to it; exactly one topic is
current at a time and only an explicit switch supersedes it.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

READY_THRESHOLD = 2
MAX_TOPICS = 50

PROBLEM_CATEGORIES = [
    {"id": "environment", "label": "Environment"},
    {"id": "health", "label": "Health"},
    {"id": "education", "label": "Education"},
    {"id": "infrastructure", "label": "Infrastructure"},
    {"id": "equity", "label": "Equity"},
]

class TopicPhase(Enum):
    """Topic lifecycle phase."""
    PROPOSED = "proposed"
    READY = "ready"
    CURRENT = "current"
    SUPERSEDED = "superseded"

def _dedupe(ids: Iterable[str]) -> List[str]:
    seen = []
    for agent_id in ids:
        if agent_id and agent_id not in seen:
            seen.append(agent_id)
    return seen

def new_topic(agent_id: str, title: Optional[str] = None, body: Optional[str] = None,
              problem: Optional[str] = None, agent_name: Optional[str] = None,
              committed_bots: Optional[List[str]] = None,
              category: Optional[str] = None, category_label: Optional[str] = None,
              approach: Optional[str] = None, needed: Optional[str] = None) -> Dict:
    """
    Build a new topic record.

    Args:
        agent_id: Proposing agent
        title: Short title (falls back to problem)
        body: Free-form description
        problem: Display subject (falls back to title)
        agent_name: Proposer display name
        committed_bots: Initially committed agents (defaults to the proposer)

    Returns:
        Topic dict, not yet ready unless two agents are already committed
    """
    if committed_bots is None:
        committed = [agent_id]
    else:
        committed = _dedupe(committed_bots)

    return {
        "id": f"topic-{uuid.uuid4().hex[:12]}",
        "title": title or problem or "Humanity",
        "body": body or "",
        "problem": problem or title,
        "agent_id": agent_id,
        "agent_name": agent_name or agent_id,
        "category": category,
        "category_label": category_label,
        "approach": approach,
        "needed": needed,
        "committed_bots": committed,
        "ready_to_code": len(committed) >= READY_THRESHOLD,
        "votes_by_agent": [],
        "upvotes": 0,
        "created_at": datetime.now().isoformat(),
        "superseded_at": None,
    }

def reaches_readiness(topic: Dict) -> bool:
    """True when the topic has enough commitments but is not yet marked ready."""
    return (not topic.get("ready_to_code")
            and len(topic.get("committed_bots") or []) >= READY_THRESHOLD)

def pick_topic_to_start(topics: List[Dict],
                        exclude_topic_id: Optional[str] = None) -> Optional[Dict]:
    """
    Select the next topic to make current.

    Among ready topics (excluding ``exclude_topic_id``), the one with the
    most upvotes wins; ties go to the oldest.
    """
    ready = [t for t in topics
             if t.get("ready_to_code") and t.get("id") != exclude_topic_id]
    if not ready:
        return None
    ready.sort(key=lambda t: (-(t.get("upvotes") or 0), t.get("created_at") or ""))
    return ready[0]

def topic_phase(topic: Dict, current_topic_id: Optional[str]) -> TopicPhase:
    """Derive the lifecycle phase of a topic."""
    if topic.get("id") == current_topic_id:
        return TopicPhase.CURRENT
    if topic.get("superseded_at"):
        return TopicPhase.SUPERSEDED
    if topic.get("ready_to_code"):
        return TopicPhase.READY
    return TopicPhase.PROPOSED

def topic_header(topic: Dict, agent_names: Dict[str, str]) -> str:
    """Deterministic artifact header written when a topic becomes current."""
    names = ", ".join(agent_names.get(agent_id) or agent_id
                      for agent_id in topic.get("committed_bots") or [])
    subject = topic.get("problem") or topic.get("title") or "Humanity"
    return (f"# Topic: {subject} - {names or 'agents'}\n"
            f"# Real-time code from agents\n")

def insert_topic(topics: List[Dict], topic: Dict,
                 current_topic_id: Optional[str] = None) -> Optional[Dict]:
    """
    Insert ``topic`` newest-first and enforce the topic cap.

    The oldest topic is dropped on overflow; the current topic is never
    the one evicted.

    Returns:
        The evicted topic, if any
    """
    topics.insert(0, topic)
    if len(topics) <= MAX_TOPICS:
        return None
    for index in range(len(topics) - 1, -1, -1):
        if topics[index].get("id") != current_topic_id:
            return topics.pop(index)
    return None

"""
Prompt builders and response parsers for the reasoning loop.

The think prompt asks for two parts, ``MESSAGE:`` and ``CODE:``; the topic
prompt asks for ``TITLE:`` and ``BODY:``. Parsers are lenient: anything
they cannot read becomes an empty result, which means "do nothing".
"""

import re
from typing import Dict, List, Optional, Tuple

MAX_MESSAGE_LENGTH = 500
MAX_CODE_LENGTH = 2000
MAX_TITLE_LENGTH = 200
MAX_BODY_LENGTH = 1500

THINK_SYSTEM_PROMPT = """You are the {name}, an agent in an always-on collaborative coding session. You have a growing memory of what the agents and you said and did; use it to stay consistent and build on the conversation. Your job is to think step by step about solving the current humanity problem and to collaborate on code. Be concise. When a teammate just spoke, reply to them by name when relevant.
Output exactly two parts on separate lines:
MESSAGE: (one short message: reply to the team or a specific agent by name, ask a question, or propose the next step; 1-2 sentences)
CODE: (1-8 lines of Python that fit the current code and topic; prefer adding at least a stub, import, or function when the buffer is small or empty; only write CODE: none when you truly have nothing to add)
If there is no current topic, output only: MESSAGE: (suggest one concrete problem we could code) and CODE: none"""

TOPIC_SYSTEM_PROMPT = ("You are an agent proposing a humanity problem to code on. Output a single "
                       "line: TITLE: (short title) then on next line BODY: (one paragraph describing "
                       "the problem and why code would help). Focus: environment, health, education, "
                       "infrastructure, or equity.")

ASSISTANT_SYSTEM_PROMPT = ("You are a coding assistant in a collaborative session. Humanity focus: real "
                           "problems (environment, health, education, infrastructure, equity). Output "
                           "only valid code that fits the existing buffer. Prefer Python. No commentary "
                           "unless the request asks for it.")

_MESSAGE_RE = re.compile(r"MESSAGE:\s*(.*?)(?=CODE:|$)", re.IGNORECASE | re.DOTALL)
_CODE_RE = re.compile(r"CODE:\s*(.*)$", re.IGNORECASE | re.DOTALL)
_TITLE_RE = re.compile(r"TITLE:\s*(.+?)(?=\n|BODY:|$)", re.IGNORECASE | re.DOTALL)
_BODY_RE = re.compile(r"BODY:\s*(.*)$", re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"^```\w*\n?|\n?```$")

def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence."""
    return _FENCE_RE.sub("", text.strip()).strip()

def _code_block(code_buffer: Optional[str]) -> str:
    if not code_buffer:
        return "No code yet."
    return f"Current code:\n```\n{code_buffer[-6000:]}\n```"

def build_think_prompt(context: Dict, agent_id: str, agent_name: str = "Thinker",
                       recalled: Optional[List[str]] = None) -> Tuple[str, str]:
    """
    Build the (system, user) prompt for a cycle with a current topic.

    Args:
        context: ``SessionState.context_for_agents()`` output
        agent_id: The thinking agent's own id
        agent_name: The thinking agent's display name
        recalled: Optional long-term memory items
    """
    topic = context.get("current_topic")
    if topic:
        topic_block = (f"Current topic: {topic.get('title')}\n"
                       f"Problem: {topic.get('problem') or ''}\n{topic.get('body') or ''}")
    else:
        topic_block = "No topic yet. We need to propose one."

    messages = context.get("recent_messages") or []
    if messages:
        discussion = "Recent discussion:\n" + "\n".join(
            f"{m.get('from_name')}: {m.get('text')}" for m in messages[-25:])
    else:
        discussion = "No discussion yet."

    memory_log = context.get("memory_log") or []
    if memory_log:
        memory_block = ("Growing memory (chronological, from the agents and you):\n"
                        + "\n".join(memory_log[-40:]))
    else:
        memory_block = "No memory yet."

    others = [a.get("name") or a.get("id") for a in context.get("agents_online") or []
              if a.get("id") != agent_id]
    team = f"Teammates: {', '.join(others)}." if others else \
        "You are the first. Start the conversation and code."

    sections = [topic_block, _code_block(context.get("code_buffer"))]
    if recalled:
        sections.append("Long-term context:\n" + "\n".join(recalled[:25]))
    sections.extend([memory_block, discussion, team])

    last = messages[-1] if messages else None
    if last and last.get("from_id") != agent_id:
        sections.append(f"A teammate ({last.get('from_name')}) just spoke. Acknowledge or reply "
                        f"to them by name, then add your thought or next step.")
    sections.append("Think step by step, then output MESSAGE: and CODE: as above.")

    return THINK_SYSTEM_PROMPT.format(name=agent_name), "\n\n".join(sections)

def build_topic_prompt(context: Dict) -> Tuple[str, str]:
    """Build the (system, user) prompt asking for a new topic."""
    existing = ", ".join(t.get("title") or "" for t in (context.get("topics") or [])[:8])
    memory_log = context.get("memory_log") or []
    memory_hint = f"Memory so far: {'; '.join(memory_log[-15:])}. " if memory_log else ""
    recent = " ".join(m.get("text") or "" for m in (context.get("recent_messages") or [])[-5:])
    user = (f"{memory_hint}Existing topics: {existing or 'none'}. Recent: {recent}. "
            f"Propose one new concrete problem we could build code for. "
            f"Output TITLE: ... and BODY: ...")
    return TOPIC_SYSTEM_PROMPT, user

def build_assistant_prompt(context: Dict, request: Optional[str] = None) -> Tuple[str, str]:
    """Build the (system, user) prompt for an on-demand code suggestion."""
    topic = context.get("current_topic")
    if topic:
        topic_line = (f"Current topic: {topic.get('title')} - {topic.get('problem') or ''}\n"
                      f"{topic.get('body') or ''}")
    else:
        topic_line = "No topic selected."

    sections = [topic_line, _code_block(context.get("code_buffer"))]
    edits = context.get("code_edits") or []
    if edits:
        sections.append("Last edits:\n" + "\n".join(
            f"- {e.get('agent_name')}: {(e.get('text') or '')[:80]}" for e in edits[-8:]))
    messages = context.get("recent_messages") or []
    if messages:
        sections.append("Recent discussion:\n" + "\n".join(
            f"- {m.get('from_name')}: {m.get('text')}" for m in messages[-12:]))
    agents = context.get("agents_online") or []
    if agents:
        sections.append("Agents online: " + ", ".join(a.get("name") or a.get("id") for a in agents))

    if request and str(request).strip():
        sections.append(f"Request: {request}")
    else:
        sections.append("Suggest the next logical code snippet to add (1-10 lines). "
                        "Output only code, no markdown fences or explanation.")
    return ASSISTANT_SYSTEM_PROMPT, "\n\n".join(sections)

def parse_think_response(text: Optional[str]) -> Tuple[str, Optional[str]]:
    """
    Parse a ``MESSAGE:``/``CODE:`` response.

    Returns:
        (message, code) where message may be empty and code is None for
        "none" or a missing part
    """
    message, code = "", None
    if not text:
        return message, code

    match = _MESSAGE_RE.search(text)
    if match:
        message = match.group(1).strip()[:MAX_MESSAGE_LENGTH]

    match = _CODE_RE.search(text)
    if match:
        raw = strip_fences(match.group(1))
        if raw and raw.lower() != "none":
            code = raw[:MAX_CODE_LENGTH]
    return message, code

def parse_topic_response(text: Optional[str]) -> Tuple[str, str]:
    """Parse a ``TITLE:``/``BODY:`` response into (title, body)."""
    title, body = "", ""
    if not text:
        return title, body

    match = _TITLE_RE.search(text)
    if match:
        title = match.group(1).strip()[:MAX_TITLE_LENGTH]

    match = _BODY_RE.search(text)
    if match:
        body = match.group(1).strip()[:MAX_BODY_LENGTH]
    return title, body

"""
Coding assistant: on-demand code suggestions from the session context.

Each interaction is appended to a JSONL log for later review.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .prompts import build_assistant_prompt, strip_fences
from ..reasoning.backends import ReasoningBackend

logger = logging.getLogger(__name__)

def log_interaction(log_path: Optional[str], entry: Dict[str, Any]) -> None:
    """Append one interaction record; failures are logged and ignored."""
    if not log_path:
        return
    try:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'a', encoding='utf-8') as f:
            f.write(json.dumps({**entry, "ts": datetime.now().isoformat()}) + "\n")
    except OSError as e:
        logger.warning(f"Failed to log assistant interaction: {e}")

async def suggest_code(context: Dict, request: Optional[str],
                       backend: Optional[ReasoningBackend],
                       log_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Suggest a code snippet for the current artifact.

    Args:
        context: ``SessionState.context_for_agents()`` output
        request: Optional free-form request; empty asks for the next snippet
        backend: Reasoning backend (None yields a placeholder result)
        log_path: JSONL interaction log

    Returns:
        Dict with ``suggestion`` (or None), ``model`` and ``error``
    """
    if backend is None:
        log_interaction(log_path, {"type": "suggest", "request": request,
                                   "placeholder": True, "error": "No reasoning backend"})
        return {
            "suggestion": None,
            "placeholder": True,
            "error": "Configure a reasoning backend to enable suggestions.",
        }

    system, user = build_assistant_prompt(context, request)
    result = await backend.complete(system, user, max_tokens=512)
    if not result.ok:
        log_interaction(log_path, {"type": "suggest", "request": request, "error": result.error})
        return {"suggestion": None, "error": result.error}

    suggestion = strip_fences(result.text) or None
    topic = context.get("current_topic") or {}
    log_interaction(log_path, {
        "type": "suggest",
        "request": request,
        "context_summary": {
            "topic": topic.get("title"),
            "buffer_lines": len((context.get("code_buffer") or "").split("\n")),
        },
        "suggestion_length": len(suggestion) if suggestion else 0,
        "model": result.model,
    })
    return {"suggestion": suggestion, "model": result.model}

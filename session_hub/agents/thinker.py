"""
Thinker Agent for Session Hub

A self-hosted participant that periodically reasons about the session
with a reasoning backend and contributes through the same mutation API
any remote agent uses. It registers itself as an ordinary agent.
"""

import asyncio
import logging
from typing import Dict, Optional

from .prompts import (
    build_think_prompt, build_topic_prompt, parse_think_response, parse_topic_response
)
from ..core.session_state import AgentSource, SessionState
from ..reasoning.backends import ReasoningBackend
from ..reasoning.memory_recall import MemoryRecallClient

logger = logging.getLogger(__name__)

THINKER_ID = "session-thinker"
THINKER_NAME = "Thinker"

class Thinker:
    """
    Autonomous reasoning loop.

    Runs every ``interval`` seconds and on demand. At most one cycle is in
    flight: a trigger arriving while a cycle runs is dropped, not queued.
    """

    def __init__(self, state: SessionState, backend: Optional[ReasoningBackend],
                 agent_id: str = THINKER_ID, agent_name: str = THINKER_NAME,
                 interval: float = 240.0, initial_delay: float = 15.0,
                 enabled: bool = True, reply_to_messages: bool = True,
                 memory_recall: Optional[MemoryRecallClient] = None):
        """
        Initialize the thinker.

        Args:
            state: Session state used for reads and mutations
            backend: Reasoning backend (None means every cycle is skipped)
            agent_id: Fixed agent id the thinker registers under
            agent_name: Display name
            interval: Seconds between scheduled cycles
            initial_delay: Seconds before the first scheduled cycle
            enabled: When False, start() does nothing
            reply_to_messages: Trigger a cycle when another agent posts a message
            memory_recall: Optional long-term memory service
        """
        self.state = state
        self.backend = backend
        self.agent_id = agent_id
        self.agent_name = agent_name
        self.interval = interval
        self.initial_delay = initial_delay
        self.enabled = enabled
        self.reply_to_messages = reply_to_messages
        self.memory_recall = memory_recall

        self._running = False
        self._in_flight = False
        self._loop_task: Optional[asyncio.Task] = None
        self._triggered = set()
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        return self._in_flight

    async def start(self):
        """Register as an agent and arm the periodic loop."""
        if not self.enabled:
            logger.info("Thinker disabled")
            return

        self.state.register_agent(
            self.agent_id,
            name=self.agent_name,
            emoji="🧠",
            focus="Reasoning about topics and code",
            intro=f"{self.agent_name} here. I'll think through the problem and code with the team.",
            source=AgentSource.SELF,
        )
        if self.reply_to_messages:
            self.state.subscribe_messages(self._on_message)

        self._running = True
        self._loop_task = asyncio.create_task(self._think_loop())
        logger.info(f"Thinker started (interval {self.interval}s, "
                    f"backend {self.backend.name if self.backend else 'none'})")

    async def stop(self):
        """Disarm timers; an in-flight cycle finishes but its result is discarded."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        logger.info("Thinker stopped")

    async def _think_loop(self):
        """
        Background loop: first cycle after the initial delay, then every interval.

        Cycles run as detached tasks, so cancelling the loop only cancels the
        sleep and never an in-flight backend call.
        """
        try:
            await asyncio.sleep(self.initial_delay)
            while self._running:
                self.trigger()
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            pass

    def _on_message(self, message: Dict):
        if message.get("from_id") != self.agent_id:
            self.trigger()

    def trigger(self) -> bool:
        """
        Request a cycle now.

        Returns:
            False if a cycle is already in flight, the thinker is stopped,
            or there is no running event loop
        """
        if not self._running or self._in_flight:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._in_flight = True
        task = loop.create_task(self._guarded_cycle())
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return True

    async def run_once(self) -> bool:
        """
        Run one cycle unless one is already in flight.

        Returns:
            False if skipped because of the in-flight guard
        """
        if self._in_flight:
            return False
        self._in_flight = True
        await self._guarded_cycle()
        return True

    async def _guarded_cycle(self):
        try:
            await self._cycle()
        except Exception as e:
            logger.error(f"Thinker cycle failed: {e}")
        finally:
            self._in_flight = False

    async def _cycle(self):
        if self.backend is None:
            logger.debug("Thinker cycle skipped: no backend")
            return
        self.cycles += 1
        context = self.state.context_for_agents()
        has_topic = bool(context.get("current_topic_id") and context.get("current_topic"))
        logger.debug(f"Thinker cycle {self.cycles}, has topic: {has_topic}")

        if has_topic:
            await self._contribute(context)
        else:
            await self._propose(context)

    async def _recall(self, context: Dict):
        if not self.memory_recall or not self.memory_recall.enabled:
            return None
        topic = context.get("current_topic")
        query = (f"Current humanity topic: {topic.get('title')}. Recent decisions and code context."
                 if topic else "Session topics, agent intents, and code so far.")
        try:
            return await self.memory_recall.retrieve(query)
        except Exception as e:
            logger.warning(f"Memory recall failed, continuing without it: {e}")
            return None

    async def _contribute(self, context: Dict):
        recalled = await self._recall(context)
        system, user = build_think_prompt(context, self.agent_id, self.agent_name, recalled)
        result = await self.backend.complete(system, user, max_tokens=600)
        if not result.ok:
            logger.debug(f"Thinker backend error: {result.error}")
            return
        message, code = parse_think_response(result.text)
        if not self._running:
            logger.debug("Thinker stopped during cycle, discarding result")
            return

        if message:
            self.state.post_message(self.agent_id, message, from_name=self.agent_name)
        if code:
            self.state.append_code(self.agent_id, code, agent_name=self.agent_name)

    async def _propose(self, context: Dict):
        system, user = build_topic_prompt(context)
        result = await self.backend.complete(system, user, max_tokens=400)
        if not result.ok:
            logger.debug(f"Thinker backend error: {result.error}")
            return
        title, body = parse_topic_response(result.text)
        if not title or not self._running:
            return

        logger.info(f"Thinker proposing topic: {title}")
        self.state.propose_topic(
            self.agent_id,
            title=title,
            body=body,
            problem=title,
            agent_name=self.agent_name,
            committed_bots=[self.agent_id],
        )

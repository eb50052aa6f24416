"""Agent roster with per-agent conversation sessions."""

import asyncio
import logging
import time
from dataclasses import dataclass

from config.config_loader import AgentConfig
from src.extractor import resolve_key
from src.models import AgentOutcome
from src.transcript import Transcript
from src.transport.base import AgentTransport, TransportError

logger = logging.getLogger(__name__)

_EMPTY_ANSWER = "No reply."


@dataclass
class Agent:
    key: str
    agent_id: str
    name: str
    host: bool = False
    panel: bool = True
    session_id: str | None = None


class AgentRegistry:
    """Fixed set of named agents, one of them the host.

    The registry is the only place that assigns or clears session ids.
    """

    def __init__(
        self,
        agents: list[AgentConfig],
        transport: AgentTransport,
        session_name: str = "Session {timestamp}",
    ) -> None:
        self._agents: dict[str, Agent] = {
            a.key: Agent(key=a.key, agent_id=a.agent_id, name=a.name, host=a.host, panel=a.panel)
            for a in agents
        }
        hosts = [a.key for a in self._agents.values() if a.host]
        if len(hosts) != 1:
            raise ValueError(f"Exactly one host agent required, found {len(hosts)}")
        self.host_key = hosts[0]
        self._transport = transport
        self._session_name = session_name

    @property
    def keys(self) -> list[str]:
        return list(self._agents)

    @property
    def panel_keys(self) -> list[str]:
        return [a.key for a in self._agents.values() if a.panel and not a.host]

    def get(self, key: str) -> Agent | None:
        return self._agents.get(key)

    def resolve(self, key: str) -> str | None:
        """Case-insensitive lookup of a registered key."""
        return resolve_key(key, self._agents)

    async def _open_session(self, agent: Agent) -> AgentOutcome:
        """Never raises: failures come back as ok=False."""
        name = self._session_name.format(timestamp=int(time.time() * 1000))
        try:
            session_id = await self._transport.create_session(agent.agent_id, name)
        except TransportError as exc:
            logger.warning("Session creation failed for %s: %s", agent.key, exc)
            return AgentOutcome(key=agent.key, ok=False, error=str(exc))
        except Exception as exc:
            logger.warning("Unexpected session failure for %s: %s", agent.key, exc)
            return AgentOutcome(key=agent.key, ok=False, error=f"Unexpected error: {exc}")
        agent.session_id = session_id
        return AgentOutcome(key=agent.key, ok=True, value=session_id)

    async def ensure_sessions(self) -> list[AgentOutcome]:
        """Open one session per agent in parallel; a failure never aborts the others."""
        outcomes = await asyncio.gather(*(self._open_session(a) for a in self._agents.values()))
        ready = sum(o.ok for o in outcomes)
        logger.info("Sessions ready: %d/%d agents", ready, len(outcomes))
        return list(outcomes)

    async def refresh(self) -> list[AgentOutcome]:
        for agent in self._agents.values():
            agent.session_id = None
        return await self.ensure_sessions()

    async def call(
        self,
        key: str,
        prompt: str,
        transcript: Transcript | None = None,
        *,
        silent: bool = False,
    ) -> str | None:
        """Ask one agent and return its answer, or None on any failure.

        Unless ``silent``, the answer (or an error note) is appended to the
        transcript. Failures are never raised.
        """
        agent = self._agents.get(key)
        if agent is None:
            logger.error("Unknown agent key: %s", key)
            return None

        logger.debug("Prompt for %s:\n%s", key, prompt)
        try:
            completion = await self._transport.complete(agent.agent_id, prompt, agent.session_id)
        except TransportError as exc:
            logger.warning("Agent %s failed: %s", key, exc)
            if not silent and transcript is not None:
                transcript.append("system", key, f"Error from {agent.name}: {exc}")
            return None
        except Exception as exc:
            logger.warning("Agent %s unexpected failure: %s", key, exc)
            if not silent and transcript is not None:
                transcript.append("system", key, f"Request to {agent.name} failed: {exc}")
            return None

        if completion.session_id:
            agent.session_id = completion.session_id
        answer = completion.answer or _EMPTY_ANSWER
        if not silent and transcript is not None:
            transcript.append(agent.name, key, answer, references=completion.references)
        return answer

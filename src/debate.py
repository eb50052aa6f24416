"""Debate orchestration: broadcast, host evaluation loop, interventions."""

import asyncio
import logging
from dataclasses import dataclass, field

from config.config_loader import PromptsConfig
from src.extractor import parse_command
from src.models import (
    AgentOutcome,
    Ask,
    DebateOutcome,
    DebateStatus,
    Finish,
    ReferenceMaterial,
    ReportPayload,
)
from src.reference import augment
from src.registry import AgentRegistry
from src.transcript import Transcript

logger = logging.getLogger(__name__)

_CONTINUE_TOPIC = "Please continue the analysis."
_CONTINUE_QUESTION = "Please respond based on the discussion so far."
_CONCLUDED = "Debate concluded."


class DebateView:
    """Presentation hooks. The default implementation does nothing."""

    def busy(self, key: str | None, active: bool) -> None:
        pass

    def notice(self, text: str) -> None:
        pass

    def report(self, payload: ReportPayload) -> None:
        pass

    def draw_geospatial_data(self, payload: ReportPayload) -> None:
        pass


@dataclass
class DebateSession:
    """Everything one debate needs; owned by the caller, never global."""

    registry: AgentRegistry
    transcript: Transcript = field(default_factory=Transcript)
    is_running: bool = False
    round: int = 0
    status: DebateStatus = DebateStatus.IDLE
    reference: ReferenceMaterial | None = None
    use_reference: bool = True


class Orchestrator:
    """Round-based debate state machine.

    Idle -> Broadcasting -> HostEvaluating -> (AgentFollowUp -> HostEvaluating)*
    -> Finished | Aborted | Exhausted
    """

    def __init__(self, prompts: PromptsConfig, max_rounds: int, view: DebateView | None = None) -> None:
        self._prompts = prompts
        self.max_rounds = max_rounds
        self.view = view or DebateView()

    def _augment(self, session: DebateSession, prompt: str) -> str:
        return augment(prompt, self._prompts, session.reference, session.use_reference)

    def _with_history(self, prompt: str, session: DebateSession) -> str:
        history = session.transcript.render()
        if not history:
            return prompt
        return f"{prompt.rstrip()}\n\n{self._prompts.history.format(history=history)}"

    def _agent_list(self, session: DebateSession) -> str:
        registry = session.registry
        return ", ".join(
            f"{k} ({registry.get(k).name})" for k in registry.keys if k != registry.host_key
        )

    async def _call_host(self, session: DebateSession, prompt: str) -> str | None:
        host = session.registry.host_key
        self.view.busy(host, True)
        try:
            return await session.registry.call(host, prompt, session.transcript, silent=True)
        finally:
            self.view.busy(host, False)

    async def _call_agent(self, session: DebateSession, key: str, prompt: str) -> AgentOutcome:
        self.view.busy(key, True)
        try:
            answer = await session.registry.call(key, prompt, session.transcript)
        finally:
            self.view.busy(key, False)
        return AgentOutcome(key=key, ok=answer is not None, value=answer)

    def _conclude(self, session: DebateSession, content: ReportPayload | str) -> tuple[ReportPayload | None, str | None]:
        host = session.registry.host_key
        host_name = session.registry.get(host).name
        if isinstance(content, ReportPayload):
            if content.has_geospatial:
                self.view.notice("Drawing target area and drill sites...")
                self.view.draw_geospatial_data(content)
            self.view.report(content)
            session.transcript.append(host_name, host, content.to_dict())
            return content, None
        session.transcript.append(host_name, host, content)
        return None, content

    async def start_debate(self, session: DebateSession, topic: str | None) -> DebateOutcome | None:
        """Run a full debate. Returns None when the request is rejected.

        Never raises; unexpected failures end the debate as ABORTED.
        """
        topic = (topic or "").strip()
        if session.is_running:
            logger.warning("Debate already running, start request ignored")
            return None
        if not topic and len(session.transcript) == 0:
            logger.warning("No topic and no history, nothing to debate")
            return None

        session.is_running = True
        session.round = 0
        self.view.busy(None, True)
        try:
            if topic:
                session.transcript.append("user", None, topic)
            return await self._run(session, topic or _CONTINUE_TOPIC)
        except Exception as exc:
            logger.exception("Debate flow failed")
            session.transcript.append("system", None, f"Debate flow error: {exc}")
            session.status = DebateStatus.ABORTED
            return DebateOutcome(status=DebateStatus.ABORTED, rounds=session.round, reason=f"error: {exc}")
        finally:
            session.is_running = False
            self.view.busy(None, False)

    async def _run(self, session: DebateSession, topic: str) -> DebateOutcome:
        session.status = DebateStatus.BROADCASTING
        panel = session.registry.panel_keys
        self.view.notice("Notifying all experts for independent analysis...")
        prompt = self._augment(session, self._prompts.initial.format(topic=topic))

        logger.info("Broadcasting to %d agents: %s", len(panel), ", ".join(panel))
        outcomes = await asyncio.gather(*(self._call_agent(session, k, prompt) for k in panel))
        answered = sum(o.ok for o in outcomes)
        logger.info("Broadcast complete: %d/%d agents answered", answered, len(panel))

        return await self.run_host_loop(session)

    async def run_host_loop(self, session: DebateSession) -> DebateOutcome:
        registry = session.registry
        while True:
            session.round += 1
            if session.round > self.max_rounds:
                logger.info("Round budget of %d exhausted, stopping", self.max_rounds)
                session.status = DebateStatus.EXHAUSTED
                return DebateOutcome(
                    status=DebateStatus.EXHAUSTED,
                    rounds=self.max_rounds,
                    reason="round budget exhausted",
                )

            session.status = DebateStatus.HOST_EVALUATING
            logger.info("Round %d: host evaluating", session.round)
            prompt = self._prompts.host.format(agents=self._agent_list(session))
            prompt = self._augment(session, self._with_history(prompt, session))
            reply = await self._call_host(session, prompt)
            if reply is None:
                session.status = DebateStatus.ABORTED
                return DebateOutcome(status=DebateStatus.ABORTED, rounds=session.round, reason="host unavailable")

            command = parse_command(reply, registry.keys)

            if isinstance(command, Finish):
                report, text = self._conclude(session, command.content)
                session.transcript.append("system", None, _CONCLUDED)
                session.status = DebateStatus.FINISHED
                logger.info("Debate finished after %d rounds", session.round)
                return DebateOutcome(
                    status=DebateStatus.FINISHED,
                    rounds=session.round,
                    report=report,
                    text=text,
                    reason="host issued final report",
                )

            if isinstance(command, Ask):
                target = registry.get(command.target)
                session.status = DebateStatus.AGENT_FOLLOW_UP
                logger.info("Round %d: host asks %s", session.round, command.target)
                session.transcript.append(
                    registry.get(registry.host_key).name,
                    registry.host_key,
                    f"(follow-up for {target.name}) {command.content}",
                )
                follow_up = self._augment(session, self._prompts.follow_up.format(question=command.content))
                await self._call_agent(session, command.target, follow_up)
                continue

            logger.warning("Unrecognized host reply (%s), stopping", command.reason)
            session.transcript.append(registry.get(registry.host_key).name, registry.host_key, command.raw)
            session.status = DebateStatus.ABORTED
            return DebateOutcome(
                status=DebateStatus.ABORTED,
                rounds=session.round,
                text=command.raw,
                reason=command.reason,
            )

    async def intervene(self, session: DebateSession, instruction: str | None) -> DebateOutcome | None:
        """Send a priority instruction to the host outside the round loop.

        Leaves round, status and the running flag untouched. Returns None for a
        blank instruction.
        """
        instruction = (instruction or "").strip()
        if not instruction:
            return None

        registry = session.registry
        try:
            session.transcript.append("user", None, f"(intervention) {instruction}")
            prompt = self._prompts.intervention.format(instruction=instruction, agents=self._agent_list(session))
            prompt = self._augment(session, self._with_history(prompt, session))
            reply = await self._call_host(session, prompt)
            if reply is None:
                return DebateOutcome(status=DebateStatus.ABORTED, rounds=session.round, reason="host unavailable")

            command = parse_command(reply, registry.keys)
            if isinstance(command, Finish):
                report, text = self._conclude(session, command.content)
                return DebateOutcome(
                    status=DebateStatus.FINISHED,
                    rounds=session.round,
                    report=report,
                    text=text,
                    reason="host issued final report",
                )

            session.transcript.append(registry.get(registry.host_key).name, registry.host_key, reply)
            reason = command.reason if not isinstance(command, Ask) else "host replied with ASK"
            return DebateOutcome(status=DebateStatus.ABORTED, rounds=session.round, text=reply, reason=reason)
        except Exception as exc:
            logger.exception("Intervention failed")
            session.transcript.append("system", None, f"Intervention error: {exc}")
            return DebateOutcome(status=DebateStatus.ABORTED, rounds=session.round, reason=f"error: {exc}")

    async def ask_agent(self, session: DebateSession, key: str, question: str | None = None) -> str | None:
        """Put a question to one agent directly, with the history as context."""
        resolved = session.registry.resolve(key)
        if resolved is None:
            logger.warning("Unknown agent '%s' for direct question", key)
            return None
        question = (question or "").strip()
        prompt = self._prompts.direct.format(question=question or _CONTINUE_QUESTION)
        prompt = self._augment(session, self._with_history(prompt, session))
        if question:
            session.transcript.append("user", None, f"(directed) {question}")
        outcome = await self._call_agent(session, resolved, prompt)
        return outcome.value

    async def reset(self, session: DebateSession, refresh_sessions: bool = True) -> list[AgentOutcome]:
        """Clear history and start fresh agent sessions.

        Raises:
            RuntimeError: If a debate is running.
        """
        if session.is_running:
            raise RuntimeError("Cannot reset while a debate is running")
        session.transcript.clear()
        session.round = 0
        session.status = DebateStatus.IDLE
        if not refresh_sessions:
            return []
        return await session.registry.refresh()

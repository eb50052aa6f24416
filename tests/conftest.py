"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from config.config_loader import AgentConfig, DefaultsConfig, PromptsConfig, TransportConfig
from src.debate import DebateSession, DebateView, Orchestrator
from src.models import Completion, ReportPayload
from src.registry import AgentRegistry
from src.transcript import Transcript
from src.transport.base import AgentTransport, TransportError


@pytest.fixture
def sample_transport_config() -> TransportConfig:
    return TransportConfig(
        base_url="http://agents.test/api/v1/agents",
        api_token_env="TEST_PROSPECT_TOKEN",
        timeout_sec=30,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        initial="Question: {topic}",
        host='HOST: reply with JSON. Experts: {agents}',
        follow_up="Host follow-up: {question}",
        intervention="PRIORITY: {instruction}. Experts: {agents}",
        direct="User asks: {question}",
        reference="[Reference{title}]\n{text}",
        history="History:\n{history}",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(max_rounds=3, output_dir=tmp_path / "output")


@pytest.fixture
def sample_agent_configs() -> list[AgentConfig]:
    return [
        AgentConfig(key="general", agent_id="id-general", name="General Geology Expert"),
        AgentConfig(key="geophysical", agent_id="id-geophysical", name="Geophysics Expert"),
        AgentConfig(key="host", agent_id="id-host", name="Host", host=True, panel=False),
    ]


class FakeTransport(AgentTransport):
    """Test double transport.

    ``replies`` maps agent_id to a list of answers (or exceptions) consumed in
    order; the last answer repeats. Every call is recorded in ``calls``.
    """

    def __init__(self, replies: dict[str, list] | None = None) -> None:
        self.replies = replies or {}
        self.calls: list[tuple[str, str, str | None]] = []
        self.sessions_opened: list[str] = []
        self.failing_sessions: set[str] = set()

    async def create_session(self, agent_id: str, name: str) -> str:
        if agent_id in self.failing_sessions:
            raise TransportError(agent_id, "session refused")
        self.sessions_opened.append(agent_id)
        return f"sess-{agent_id}"

    async def complete(self, agent_id: str, question: str, session_id: str | None = None) -> Completion:
        self.calls.append((agent_id, question, session_id))
        queue = self.replies.get(agent_id, [f"answer from {agent_id}"])
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, Completion):
            return reply
        return Completion(answer=reply)

    def called_agents(self) -> list[str]:
        return [agent_id for agent_id, _, _ in self.calls]


class RecordingView(DebateView):
    def __init__(self) -> None:
        self.drawn: list[ReportPayload] = []
        self.reports: list[ReportPayload] = []
        self.notices: list[str] = []
        self.busy_events: list[tuple[str | None, bool]] = []

    def busy(self, key: str | None, active: bool) -> None:
        self.busy_events.append((key, active))

    def notice(self, text: str) -> None:
        self.notices.append(text)

    def report(self, payload: ReportPayload) -> None:
        self.reports.append(payload)

    def draw_geospatial_data(self, payload: ReportPayload) -> None:
        self.drawn.append(payload)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry(sample_agent_configs, fake_transport) -> AgentRegistry:
    return AgentRegistry(sample_agent_configs, fake_transport)


@pytest.fixture
def session(registry) -> DebateSession:
    return DebateSession(registry=registry, transcript=Transcript())


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


@pytest.fixture
def orchestrator(sample_prompts_config, view) -> Orchestrator:
    return Orchestrator(sample_prompts_config, max_rounds=3, view=view)

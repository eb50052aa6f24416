"""Load settings.yaml into typed dataclasses. Validates the agent roster at startup."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class TransportConfig:
    base_url: str
    api_token_env: str
    timeout_sec: int


@dataclass
class AgentConfig:
    key: str
    agent_id: str
    name: str
    host: bool = False
    panel: bool = True      # receives the initial broadcast


@dataclass
class PromptsConfig:
    initial: str
    host: str
    follow_up: str
    intervention: str
    direct: str
    reference: str
    history: str = "Debate history:\n{history}"


@dataclass
class DefaultsConfig:
    max_rounds: int
    output_dir: Path
    session_name: str = "Session {timestamp}"


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    transport: TransportConfig
    agents: dict[str, AgentConfig]
    prompts: PromptsConfig
    token_available: bool = False


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError if the
    roster does not contain exactly one host agent.
    Logs a warning for a missing API token but does not raise.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_rounds=int(defaults_raw["max_rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        session_name=str(defaults_raw.get("session_name", "Session {timestamp}")),
    )

    transport_raw = raw["transport"]
    transport = TransportConfig(
        base_url=str(transport_raw["base_url"]),
        api_token_env=str(transport_raw["api_token_env"]),
        timeout_sec=int(transport_raw["timeout_sec"]),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        initial=prompts_raw["initial"],
        host=prompts_raw["host"],
        follow_up=prompts_raw["follow_up"],
        intervention=prompts_raw["intervention"],
        direct=prompts_raw["direct"],
        reference=prompts_raw["reference"],
        history=prompts_raw.get("history", "Debate history:\n{history}"),
    )

    agents: dict[str, AgentConfig] = {}
    for key, agent_raw in raw["agents"].items():
        is_host = bool(agent_raw.get("host", False))
        agents[key] = AgentConfig(
            key=key,
            agent_id=str(agent_raw["id"]),
            name=str(agent_raw.get("name", key)),
            host=is_host,
            panel=bool(agent_raw.get("panel", not is_host)) and not is_host,
        )

    hosts = [a.key for a in agents.values() if a.host]
    if len(hosts) != 1:
        raise ValueError(f"Exactly one host agent required, found {len(hosts)}: {hosts}")

    token_available = bool(os.environ.get(transport.api_token_env, "").strip())
    if token_available:
        logger.info("API token found in %s", transport.api_token_env)
    else:
        logger.warning("API token missing, set %s in .env", transport.api_token_env)

    return AppConfig(
        defaults=defaults,
        transport=transport,
        agents=agents,
        prompts=prompts,
        token_available=token_available,
    )

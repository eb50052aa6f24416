"""HTTP transport for knowledge-base chat agents, using aiohttp."""

import logging
import os
import time
from typing import Any

import aiohttp
from aiohttp import ClientTimeout

from config.config_loader import TransportConfig
from src.models import Completion
from src.transport.base import AgentTransport, TransportError

logger = logging.getLogger(__name__)


class HttpAgentTransport(AgentTransport):
    """POSTs to ``{base_url}/{agent_id}/sessions`` and ``/completions``.

    The service wraps every reply as ``{"code": 0, "data": {...}}``; any other
    code is an application-level failure carrying ``message``.
    """

    def __init__(self, config: TransportConfig) -> None:
        self._config = config
        self._token = os.environ.get(config.api_token_env, "").strip()
        if not self._token:
            logger.warning("No API token in %s, requests will be unauthenticated", config.api_token_env)
        self._session: aiohttp.ClientSession | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self._config.timeout_sec),
                headers=self._headers(),
            )
        return self._session

    async def _post(self, agent_id: str, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.base_url.rstrip('/')}/{agent_id}/{path}"
        try:
            async with self._client().post(url, json=body) as resp:
                data = await resp.json(content_type=None)
        except TimeoutError as exc:
            raise TransportError(agent_id, f"Request timed out after {self._config.timeout_sec}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(agent_id, f"Request failed: {exc}") from exc
        except ValueError as exc:
            raise TransportError(agent_id, f"Invalid JSON response: {exc}") from exc

        if not isinstance(data, dict):
            raise TransportError(agent_id, "Unexpected response shape")
        code = data.get("code")
        if code != 0 or not data.get("data"):
            raise TransportError(agent_id, str(data.get("message") or "unknown error"), code=code)
        return data["data"]

    async def create_session(self, agent_id: str, name: str) -> str:
        data = await self._post(agent_id, "sessions", {"name": name})
        session_id = data.get("id")
        if not session_id:
            raise TransportError(agent_id, "Session response has no id")
        return str(session_id)

    async def complete(self, agent_id: str, question: str, session_id: str | None = None) -> Completion:
        body: dict[str, Any] = {"question": question, "stream": False}
        if session_id:
            body["session_id"] = session_id

        start = time.monotonic()
        data = await self._post(agent_id, "completions", body)
        latency = time.monotonic() - start

        refs = data.get("reference") or {}
        chunks = refs.get("chunks", []) if isinstance(refs, dict) else refs
        answer = data.get("answer") or ""

        logger.info("Agent %s answered in %.2fs (%d chars, %d refs)", agent_id, latency, len(answer), len(chunks))
        return Completion(
            answer=answer,
            session_id=data.get("session_id"),
            references=list(chunks) if isinstance(chunks, list) else [],
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

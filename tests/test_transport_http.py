"""Tests for src/transport/http.py with mocked aiohttp sessions."""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from src.transport.base import TransportError
from src.transport.http import HttpAgentTransport


def _mock_session(payload=None, post_side_effect=None) -> tuple[MagicMock, AsyncMock]:
    mock_response = AsyncMock()
    mock_response.status = 200
    mock_response.json = AsyncMock(return_value=payload)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    if post_side_effect is not None:
        mock_session.post = MagicMock(side_effect=post_side_effect)
    else:
        mock_session.post = MagicMock(return_value=mock_response)
    mock_session.closed = False
    mock_session.close = AsyncMock()
    return mock_session, mock_response


@pytest.fixture
def transport(sample_transport_config, monkeypatch) -> HttpAgentTransport:
    monkeypatch.setenv("TEST_PROSPECT_TOKEN", "ragflow-secret")
    return HttpAgentTransport(sample_transport_config)


async def test_create_session_posts_name(transport):
    mock_session, _ = _mock_session({"code": 0, "data": {"id": "s-123"}})
    with patch("aiohttp.ClientSession", return_value=mock_session) as factory:
        session_id = await transport.create_session("agent-1", "Session 1")

    assert session_id == "s-123"
    url = mock_session.post.call_args[0][0]
    assert url == "http://agents.test/api/v1/agents/agent-1/sessions"
    assert mock_session.post.call_args[1]["json"] == {"name": "Session 1"}
    headers = factory.call_args[1]["headers"]
    assert headers["Authorization"] == "Bearer ragflow-secret"


async def test_complete_success(transport):
    mock_session, _ = _mock_session({
        "code": 0,
        "data": {
            "answer": "Porphyry Cu likely at depth.",
            "session_id": "s-999",
            "reference": {"chunks": [{"content": "doc 1"}, {"content": "doc 2"}]},
        },
    })
    with patch("aiohttp.ClientSession", return_value=mock_session):
        completion = await transport.complete("agent-1", "Where?", session_id="s-1")

    assert completion.answer == "Porphyry Cu likely at depth."
    assert completion.session_id == "s-999"
    assert len(completion.references) == 2
    body = mock_session.post.call_args[1]["json"]
    assert body == {"question": "Where?", "stream": False, "session_id": "s-1"}
    assert mock_session.post.call_args[0][0].endswith("/agent-1/completions")


async def test_complete_omits_missing_session(transport):
    mock_session, _ = _mock_session({"code": 0, "data": {"answer": "ok"}})
    with patch("aiohttp.ClientSession", return_value=mock_session):
        completion = await transport.complete("agent-1", "Where?")
    assert "session_id" not in mock_session.post.call_args[1]["json"]
    assert completion.session_id is None
    assert completion.references == []


async def test_application_error_raises(transport):
    mock_session, _ = _mock_session({"code": 102, "message": "Agent not found"})
    with patch("aiohttp.ClientSession", return_value=mock_session):
        with pytest.raises(TransportError, match="Agent not found") as exc_info:
            await transport.complete("agent-1", "Where?")
    assert exc_info.value.code == 102
    assert exc_info.value.agent_id == "agent-1"


async def test_connection_error_raises(transport):
    mock_session, _ = _mock_session(post_side_effect=aiohttp.ClientError("refused"))
    with patch("aiohttp.ClientSession", return_value=mock_session):
        with pytest.raises(TransportError, match="Request failed"):
            await transport.create_session("agent-1", "Session 1")


async def test_timeout_raises(transport):
    mock_session, _ = _mock_session(post_side_effect=TimeoutError())
    with patch("aiohttp.ClientSession", return_value=mock_session):
        with pytest.raises(TransportError, match="timed out after 30s"):
            await transport.complete("agent-1", "Where?")


async def test_invalid_json_raises(transport):
    mock_session, mock_response = _mock_session()
    mock_response.json = AsyncMock(side_effect=ValueError("Expecting value"))
    with patch("aiohttp.ClientSession", return_value=mock_session):
        with pytest.raises(TransportError, match="Invalid JSON"):
            await transport.complete("agent-1", "Where?")


async def test_session_without_id_raises(transport):
    mock_session, _ = _mock_session({"code": 0, "data": {"name": "Session 1"}})
    with patch("aiohttp.ClientSession", return_value=mock_session):
        with pytest.raises(TransportError, match="no id"):
            await transport.create_session("agent-1", "Session 1")


async def test_close_releases_session(transport):
    mock_session, _ = _mock_session({"code": 0, "data": {"answer": "ok"}})
    with patch("aiohttp.ClientSession", return_value=mock_session):
        await transport.complete("agent-1", "Where?")
    await transport.close()
    mock_session.close.assert_awaited_once()


def test_missing_token_sends_no_auth(sample_transport_config, monkeypatch):
    monkeypatch.delenv("TEST_PROSPECT_TOKEN", raising=False)
    transport = HttpAgentTransport(sample_transport_config)
    assert "Authorization" not in transport._headers()

"""Recover host commands from free-form (often malformed) LLM output."""

import json
import logging
import re
from collections.abc import Iterable
from typing import Any

from src.models import Ask, Command, Finish, ReportPayload, Unrecognized

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?")
_CITATION_RE = re.compile(r"\[ID:\d+\]")


def _clean(raw: str) -> str:
    cleaned = _FENCE_RE.sub("", raw).strip()
    return _CITATION_RE.sub("", cleaned)


def extract_command(raw: str) -> dict[str, Any] | None:
    """Pull the JSON object out of a host reply.

    Strips code fences and ``[ID:n]`` citation markers, then parses the text
    between the first ``{`` and the last ``}``. If that slice is not valid
    JSON (e.g. two sibling objects), the first complete object is decoded
    instead. Returns None when nothing parses to an object; never raises.
    """
    if not raw:
        return None
    text = _clean(raw)

    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        candidate = text[first:last + 1]
    else:
        candidate = text

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.debug("Host reply is not a single JSON object (%s), trying first object", exc)
        if first == -1:
            return None
        try:
            parsed, _ = json.JSONDecoder().raw_decode(text, first)
        except json.JSONDecodeError as exc2:
            logger.warning("JSON parse error in host reply: %s", exc2)
            return None

    if not isinstance(parsed, dict):
        logger.warning("Host reply parsed to %s, expected an object", type(parsed).__name__)
        return None
    return parsed


def resolve_key(name: str, agent_keys: Iterable[str]) -> str | None:
    """Case-insensitive match of ``name`` against registered keys, ignoring surrounding whitespace."""
    wanted = name.strip().lower()
    return next((k for k in agent_keys if k.lower() == wanted), None)


def parse_command(raw: str, agent_keys: Iterable[str]) -> Command:
    """Turn a host reply into Ask, Finish or Unrecognized.

    ASK targets are matched case-insensitively against ``agent_keys`` and
    replaced by the registered key.
    """
    data = extract_command(raw)
    if data is None:
        return Unrecognized(raw=raw, reason="no JSON object found")

    action = data.get("action")
    if not isinstance(action, str):
        return Unrecognized(raw=raw, reason="missing action")
    action = action.strip().upper()

    if action == "FINISH":
        content = data.get("content")
        if isinstance(content, dict):
            return Finish(content=ReportPayload.from_dict(content))
        if isinstance(content, str):
            return Finish(content=content)
        if content is None:
            return Finish(content="")
        return Finish(content=json.dumps(content, ensure_ascii=False))

    if action == "ASK":
        target = data.get("target")
        if not isinstance(target, str) or not target.strip():
            return Unrecognized(raw=raw, reason="ASK without target")
        key = resolve_key(target, agent_keys)
        if key is None:
            return Unrecognized(raw=raw, reason=f"unknown target '{target}'")
        content = data.get("content")
        if not isinstance(content, str):
            content = "" if content is None else json.dumps(content, ensure_ascii=False)
        return Ask(target=key, content=content)

    return Unrecognized(raw=raw, reason=f"unknown action '{action}'")

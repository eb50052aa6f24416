"""Tests for src/extractor.py."""

import json

from src.extractor import extract_command, parse_command
from src.models import Ask, Finish, ReportPayload, Unrecognized

KEYS = ["general", "geophysical", "host"]

FINISH_OBJ = {
    "action": "FINISH",
    "content": {
        "probability": "72%",
        "favorable_zone": "NE contact zone",
        "drill_sites": [{"id": "ZK1", "lat": 39.91, "lng": 116.41, "depth": "600m", "reason": "mag high"}],
    },
}


def test_extract_plain_json():
    assert extract_command(json.dumps(FINISH_OBJ)) == FINISH_OBJ


def test_extract_fenced_prose_and_citations():
    body = json.dumps(FINISH_OBJ)
    # Citation marker dropped inside a string value and between tokens
    body = body.replace('"NE contact zone"', '"NE contact zone[ID:7]"').replace(', "drill_sites"', ' [ID:12], "drill_sites"')
    raw = f"Here is my verdict after weighing the panel:\n```json\n{body}\n```\nThanks."
    assert extract_command(raw) == FINISH_OBJ


def test_extract_not_json_returns_none():
    assert extract_command("not json at all") is None


def test_extract_empty_returns_none():
    assert extract_command("") is None


def test_extract_broken_json_returns_none():
    assert extract_command('{"action": "ASK", "target": ') is None


def test_extract_non_object_returns_none():
    assert extract_command("[1, 2, 3]") is None


def test_extract_sibling_objects_takes_first():
    raw = '{"action": "ASK", "target": "general", "content": "a"} {"action": "FINISH", "content": "b"}'
    assert extract_command(raw) == {"action": "ASK", "target": "general", "content": "a"}


def test_parse_ask_resolves_target_case_insensitively():
    cmd = parse_command('{"action":"ASK","target":"Geophysical","content":"why?"}', KEYS)
    assert cmd == Ask(target="geophysical", content="why?")


def test_parse_ask_unknown_target_is_unrecognized():
    raw = '{"action":"ASK","target":"astrologer","content":"why?"}'
    cmd = parse_command(raw, KEYS)
    assert isinstance(cmd, Unrecognized)
    assert cmd.raw == raw
    assert "astrologer" in cmd.reason


def test_parse_ask_without_target_is_unrecognized():
    cmd = parse_command('{"action":"ASK","content":"why?"}', KEYS)
    assert isinstance(cmd, Unrecognized)


def test_parse_finish_structured():
    cmd = parse_command(json.dumps(FINISH_OBJ), KEYS)
    assert isinstance(cmd, Finish)
    assert isinstance(cmd.content, ReportPayload)
    assert cmd.content.favorable_zone == "NE contact zone"
    assert len(cmd.content.drill_sites) == 1


def test_parse_finish_string_content():
    cmd = parse_command('{"action":"FINISH","content":"Low potential, stop here."}', KEYS)
    assert cmd == Finish(content="Low potential, stop here.")


def test_parse_unknown_action():
    cmd = parse_command('{"action":"DANCE"}', KEYS)
    assert isinstance(cmd, Unrecognized)
    assert "DANCE" in cmd.reason


def test_parse_missing_action():
    cmd = parse_command('{"content":"hello"}', KEYS)
    assert isinstance(cmd, Unrecognized)


def test_parse_garbage_keeps_raw_text():
    raw = "I think we need more data before concluding."
    cmd = parse_command(raw, KEYS)
    assert isinstance(cmd, Unrecognized)
    assert cmd.raw == raw

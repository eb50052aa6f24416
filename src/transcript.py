"""Append-only debate transcript, replayed as history into every prompt."""

import json
import logging
from collections.abc import Callable, Iterator
from typing import Any

from src.models import TranscriptEntry

logger = logging.getLogger(__name__)


class Transcript:
    """Ordered record of everything said in a debate.

    Entries are immutable and kept in append order. An optional listener is
    called with each new entry (the presentation layer hooks in here).
    """

    def __init__(self, on_append: Callable[[TranscriptEntry], None] | None = None) -> None:
        self._entries: list[TranscriptEntry] = []
        self.on_append = on_append

    def append(
        self,
        role: str,
        key: str | None,
        content: Any,
        references: list[dict] | None = None,
    ) -> TranscriptEntry:
        if not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        entry = TranscriptEntry(role=role, key=key, content=content, references=tuple(references or ()))
        self._entries.append(entry)
        logger.debug("Transcript +%s (%d chars)", role, len(content))
        if self.on_append:
            self.on_append(entry)
        return entry

    def render(self) -> str:
        """Concatenate entries as ``【role (ID: key)】:`` blocks separated by blank lines.

        Returns "" for an empty transcript so callers can leave the history
        section out of the prompt altogether.
        """
        if not self._entries:
            return ""
        blocks = []
        for entry in self._entries:
            id_info = f" (ID: {entry.key})" if entry.key else ""
            blocks.append(f"【{entry.role}{id_info}】:\n{entry.content}")
        return "\n\n".join(blocks)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def entries(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(tuple(self._entries))

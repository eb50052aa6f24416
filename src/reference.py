"""Operator-supplied reference material: loading and prompt augmentation."""

import logging
from pathlib import Path

import frontmatter

from config.config_loader import PromptsConfig
from src.models import ReferenceMaterial

logger = logging.getLogger(__name__)


def load_reference(file_path: Path) -> ReferenceMaterial:
    """Read a markdown/text file with optional YAML frontmatter.

    A ``title`` key in the frontmatter labels the material in prompts.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the body is empty.
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Reference file not found: {file_path}")
    post = frontmatter.load(str(file_path))
    text = post.content.strip()
    if not text:
        raise ValueError(f"Reference file is empty: {file_path}")
    title = post.metadata.get("title")
    logger.info("Loaded reference material from %s (%d chars)", file_path, len(text))
    return ReferenceMaterial(text=text, source=str(file_path), title=str(title) if title else None)


def augment(prompt: str, prompts: PromptsConfig, reference: ReferenceMaterial | None, enabled: bool = True) -> str:
    """Append the reference block to a prompt when material is loaded and enabled."""
    if not enabled or reference is None or not reference.text:
        return prompt
    title = f": {reference.title}" if reference.title else ""
    block = prompts.reference.format(title=title, text=reference.text)
    return f"{prompt.rstrip()}\n\n{block}"

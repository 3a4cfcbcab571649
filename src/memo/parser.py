"""Markdown ingestion: front matter tags and ``##``/``###`` sections."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import frontmatter

from memo.errors import ValidationError
from memo.models import normalize_tags, union_tags

logger = logging.getLogger(__name__)

OVERVIEW_TITLE = "Overview"

_HEADING = re.compile(r"^(#{2,3})\s+(.+?)\s*#*\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")


@dataclass
class Section:
    """One embeddable chunk of a Markdown document (or a plain text input)."""

    title: str
    content: str
    tags: list[str] = field(default_factory=list)
    source_file: str | None = None


@dataclass
class InputGroup:
    """Sections that are stored together (one file, or one text argument)."""

    source: Path | None
    sections: list[Section]


def split_tags(value: str | None) -> list[str]:
    """Parse a comma-separated tag list as typed on the command line."""
    if not value:
        return []
    return normalize_tags(value.split(","))


def parse_tags(value) -> list[str]:
    """Front matter ``tags`` may be a YAML list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return split_tags(value)
    if isinstance(value, (list, tuple)):
        return normalize_tags([str(v) for v in value])
    return normalize_tags([str(value)])


def split_sections(body: str) -> list[tuple[str, str]]:
    """Split a Markdown body on level-2/3 headings, ignoring fenced code."""
    sections: list[tuple[str, list[str]]] = [(OVERVIEW_TITLE, [])]
    in_fence = False
    for line in body.splitlines():
        if _FENCE.match(line):
            in_fence = not in_fence
        match = None if in_fence else _HEADING.match(line)
        if match:
            sections.append((match.group(2).strip(), []))
        else:
            sections[-1][1].append(line)
    return [
        (title, "\n".join(lines).strip())
        for title, lines in sections
        if "\n".join(lines).strip()
    ]


def parse_markdown_file(path: Path) -> list[Section]:
    """Read a Markdown file into sections that inherit its front matter tags."""
    try:
        post = frontmatter.load(str(path))
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Cannot read {path}: {e}", path=str(path)) from e
    tags = parse_tags(post.metadata.get("tags"))
    sections = [
        Section(title=title, content=content, tags=list(tags), source_file=str(path))
        for title, content in split_sections(post.content)
    ]
    logger.debug("Parsed %s: %d sections", path, len(sections))
    return sections


def collect_markdown_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.rglob("*.md") if p.is_file())


def load_input(value: str, tags: list[str] | None = None) -> list[InputGroup]:
    """Resolve an ``embed`` argument: directory, Markdown file, or literal text."""
    user_tags = normalize_tags(tags)
    path = Path(value).expanduser()

    if path.is_dir():
        files = collect_markdown_files(path)
    elif path.is_file():
        files = [path]
    else:
        if not value.strip():
            raise ValidationError("Nothing to embed: input is empty")
        return [InputGroup(source=None, sections=[Section(title="", content=value, tags=user_tags)])]

    groups = []
    for md_file in files:
        sections = parse_markdown_file(md_file)
        for section in sections:
            section.tags = union_tags(section.tags, user_tags)
        if sections:
            groups.append(InputGroup(source=md_file, sections=sections))
    return groups

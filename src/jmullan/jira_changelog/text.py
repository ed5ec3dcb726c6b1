"""Functions for manipulating text."""

import logging
import re
from typing import TypeGuard

logger = logging.getLogger(__name__)

CONTINUATION = "..."


def none_as_empty(string: str | None) -> str:
    """Turn that None into an empty string or leave it alone."""
    if string is None:
        return ""
    return string


def none_as_empty_stripped(string: str | None) -> str:
    """Turn Nones into empty strings, and strip other strings."""
    return none_as_empty(string).strip()


def some_string(string: str | None) -> TypeGuard[str]:
    """Determine if the string is None or blank."""
    if string is None:
        return False
    return len(string.strip()) > 0


def collapse_newlines(text: str | None) -> str:
    """Put a multi-line message on a single line."""
    return re.sub(r"[\r\n]+", " ", none_as_empty(text)).strip()


def join_stripped(parts: list[str | None]) -> str:
    """Strip each part, then glue them together one per line."""
    return "\n".join(none_as_empty_stripped(part) for part in parts).strip()


def split_long_line(line: str, limit: int) -> list[str]:
    """Cut a single line into pieces, marking each cut with a continuation."""
    size = limit - len(CONTINUATION)
    pieces = []
    remaining = line.strip()
    while remaining:
        piece = remaining[:size].strip()
        remaining = remaining[size:].strip()
        if remaining:
            piece = f"{piece}{CONTINUATION}"
            remaining = f"{CONTINUATION}{remaining}"
        pieces.append(piece)
    return pieces


def split_into_chunks(text: str, limit: int) -> list[str]:
    """Cut text into chunks no longer than the limit, preferring to cut between lines."""
    if len(text) <= limit:
        return [text]

    chunks = []
    block = ""
    for line in text.split("\n"):
        candidate = f"{block}{line}\n"
        if len(candidate) <= limit:
            block = candidate
            continue
        if block:
            chunks.append(block.rstrip("\n"))
            block = ""
        if len(line) <= limit:
            block = f"{line}\n"
        else:
            chunks.extend(split_long_line(line, limit))
    if some_string(block):
        chunks.append(block.rstrip("\n"))
    logger.debug("Split %s characters into %s chunks", len(text), len(chunks))
    return chunks

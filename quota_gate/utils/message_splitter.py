"""Split long generated answers into platform-sized messages.

Splitting descends through three levels, each used only when the unit at
the previous level is still too long:

1. paragraphs (separated by a blank line), packed greedily;
2. sentences, ending with the full-width period "。";
3. hard slices of exactly ``max_length`` characters.

Chunks are whitespace-trimmed and empty chunks are dropped, so the
concatenated chunks keep every non-whitespace character of the input.
"""

from __future__ import annotations

import re
from typing import Iterator

PARAGRAPH_BREAK = re.compile(r"\r?\n[ \t]*\r?\n")
SENTENCE = re.compile(r"[^。]*。|[^。]+")

PARAGRAPH_SEPARATOR = "\n\n"


def part_indicator(index: int, total: int) -> str:
    """Delivery suffix appended to each part of a multi-part answer."""
    return f" ({index}/{total})"


class _ChunkBuffer:
    """Accumulates pieces of the chunk being built."""

    def __init__(self, max_length: int) -> None:
        self.max_length = max_length
        self._parts: list[str] = []
        self._length = 0

    def fits(self, piece: str, separator: str) -> bool:
        extra = len(separator) if self._parts else 0
        return self._length + extra + len(piece) <= self.max_length

    def add(self, piece: str, separator: str) -> None:
        if self._parts:
            self._parts.append(separator)
            self._length += len(separator)
        self._parts.append(piece)
        self._length += len(piece)

    def flush(self) -> str | None:
        chunk = "".join(self._parts).strip()
        self._parts = []
        self._length = 0
        return chunk or None


def _pack_sentence(sentence: str, buffer: _ChunkBuffer) -> Iterator[str]:
    if buffer.fits(sentence, ""):
        buffer.add(sentence, "")
        return

    chunk = buffer.flush()
    if chunk:
        yield chunk

    max_length = buffer.max_length
    start = 0
    while len(sentence) - start > max_length:
        piece = sentence[start:start + max_length].strip()
        if piece:
            yield piece
        start += max_length
    buffer.add(sentence[start:], "")


def _iter_chunks(text: str, max_length: int) -> Iterator[str]:
    if len(text) <= max_length:
        chunk = text.strip()
        if chunk:
            yield chunk
        return

    buffer = _ChunkBuffer(max_length)
    for paragraph in PARAGRAPH_BREAK.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue

        if buffer.fits(paragraph, PARAGRAPH_SEPARATOR):
            buffer.add(paragraph, PARAGRAPH_SEPARATOR)
            continue

        chunk = buffer.flush()
        if chunk:
            yield chunk

        if len(paragraph) <= max_length:
            buffer.add(paragraph, PARAGRAPH_SEPARATOR)
            continue

        for sentence in SENTENCE.findall(paragraph):
            yield from _pack_sentence(sentence, buffer)

    chunk = buffer.flush()
    if chunk:
        yield chunk


def split_message(text: str, max_length: int) -> Iterator[str]:
    """Lazily split ``text`` into chunks of at most ``max_length`` characters.

    Empty (or whitespace-only) text yields nothing. Text that already fits
    yields a single trimmed chunk.

    Args:
        text: Text to split.
        max_length: Maximum characters per chunk.

    Returns:
        Iterator over non-empty chunks, in order. The iterator is single-use.

    Raises:
        ValueError: If max_length is < 1 (raised immediately, not on iteration).
    """
    if max_length < 1:
        raise ValueError("max_length must be >= 1")
    return _iter_chunks(text, max_length)


def split_for_delivery(text: str, max_message_length: int) -> list[str]:
    """Split text into messages that fit the platform limit including the
    ``" (i/total)"`` indicator.

    Room for the indicator is reserved before splitting, widened until it
    can hold the final part count, so every returned message is at most
    ``max_message_length`` characters. A single message carries no indicator.

    Args:
        text: Generated answer.
        max_message_length: Platform message limit.

    Returns:
        Messages in delivery order (empty list for empty text).

    Raises:
        ValueError: If the limit cannot hold any content plus the indicator.
    """
    content = text.strip()
    if not content:
        return []
    if len(content) <= max_message_length:
        return [content]

    expected_total = 2
    while True:
        reserved = len(part_indicator(expected_total, expected_total))
        body_length = max_message_length - reserved
        if body_length < 1:
            raise ValueError(
                f"max_message_length={max_message_length} cannot fit content and part indicator"
            )
        chunks = list(split_message(content, body_length))
        total = len(chunks)
        if len(part_indicator(total, total)) <= reserved:
            break
        expected_total = total

    if total == 1:
        return chunks
    return [f"{chunk}{part_indicator(i, total)}" for i, chunk in enumerate(chunks, start=1)]

"""Parsing and citation rendering for search-grounded answers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class GroundingChunk:
    title: str = "Untitled"
    uri: str = "No URI"


@dataclass(frozen=True)
class GroundingSupport:
    """A span of answer text (UTF-8 byte offsets) backed by some chunks."""

    start_index: int
    end_index: int
    chunk_indices: tuple[int, ...]


@dataclass(frozen=True)
class GroundedAnswer:
    text: str
    chunks: tuple[GroundingChunk, ...] = ()
    supports: tuple[GroundingSupport, ...] = ()

    def render(self) -> str:
        """Answer text with ``[n]`` citation markers and a trailing sources list."""
        rendered = insert_citations(self.text, self.supports)
        sources = render_sources(self.chunks)
        if sources:
            rendered = f"{rendered}\n\n{sources}"
        return rendered


def parse_grounded_answer(payload: dict[str, Any]) -> GroundedAnswer | None:
    """Read candidate 0 of a ``generateContent`` response. ``None`` when it has no text."""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    candidate = candidates[0]

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    text = "".join(
        part["text"]
        for part in (parts if isinstance(parts, list) else [])
        if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought")
    )
    if not text.strip():
        return None

    metadata = candidate.get("groundingMetadata")
    if not isinstance(metadata, dict):
        return GroundedAnswer(text=text)

    chunks: list[GroundingChunk] = []
    for raw in metadata.get("groundingChunks") or []:
        web = raw.get("web") if isinstance(raw, dict) else None
        web = web if isinstance(web, dict) else {}
        chunks.append(GroundingChunk(title=web.get("title") or "Untitled", uri=web.get("uri") or "No URI"))

    supports: list[GroundingSupport] = []
    for raw in metadata.get("groundingSupports") or []:
        if not isinstance(raw, dict):
            continue
        segment = raw.get("segment")
        indices = raw.get("groundingChunkIndices")
        if not isinstance(segment, dict) or not isinstance(indices, list):
            continue
        end_index = segment.get("endIndex")
        if not isinstance(end_index, int):
            continue
        start_index = segment.get("startIndex")
        supports.append(
            GroundingSupport(
                start_index=start_index if isinstance(start_index, int) else 0,
                end_index=end_index,
                chunk_indices=tuple(index for index in indices if isinstance(index, int)),
            )
        )
    return GroundedAnswer(text=text, chunks=tuple(chunks), supports=tuple(supports))


def insert_citations(text: str, supports: Sequence[GroundingSupport]) -> str:
    """Insert ``[n]`` markers (1-based chunk numbers) at each support's end offset.

    Offsets count UTF-8 bytes. Insertions run from the highest offset down so
    earlier offsets stay valid; offsets past the end of the text are dropped.
    """
    encoded = text.encode("utf-8")
    insertions = sorted(
        (
            (support.end_index, "".join(f"[{index + 1}]" for index in support.chunk_indices))
            for support in supports
            if support.chunk_indices
        ),
        key=lambda item: item[0],
        reverse=True,
    )
    for offset, marker in insertions:
        if offset < 0 or offset > len(encoded):
            continue
        encoded = encoded[:offset] + marker.encode("utf-8") + encoded[offset:]
    return encoded.decode("utf-8", errors="replace")


def render_sources(chunks: Sequence[GroundingChunk]) -> str:
    if not chunks:
        return ""
    lines = [f"[{index}] {chunk.title} ({chunk.uri})" for index, chunk in enumerate(chunks, start=1)]
    return "Sources:\n" + "\n".join(lines)

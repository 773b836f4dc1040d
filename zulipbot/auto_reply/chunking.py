"""
Splitting long replies into Zulip-sized messages.

Chunking is lossless: joining the chunks yields the original text. Break
points prefer paragraph, line, sentence, then word boundaries, and avoid
splitting inside an open ``` code fence when possible.
"""

import re
from typing import Literal


ChunkMode = Literal["length", "newline"]
TableMode = Literal["off", "code", "bullets"]

_FENCE = re.compile(r"^\s*(```|~~~)")
_SENTENCE_END = re.compile(r"[.!?][)\]\"']*\s")
_WHITESPACE = re.compile(r"\s")
_TABLE_SEPARATOR = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")


def chunk_text(text: str, limit: int, mode: ChunkMode = "length") -> list[str]:
    """
    Split text into chunks of at most `limit` characters.

    Args:
        text: Markdown text to split.
        limit: Maximum chunk length.
        mode: "length" packs each chunk as full as possible; "newline"
            keeps paragraphs together and only splits oversized ones.

    Returns:
        Chunks in order. `"".join(chunks) == text`.
    """
    if limit <= 0:
        raise ValueError("chunk limit must be positive")
    if not text:
        return []
    if len(text) <= limit:
        return [text]
    if mode == "newline":
        return _chunk_paragraphs(text, limit)
    return _chunk_length(text, limit)


def _chunk_length(text: str, limit: int) -> list[str]:
    chunks = []
    rest = text
    while len(rest) > limit:
        cut = _find_break(rest, limit)
        chunks.append(rest[:cut])
        rest = rest[cut:]
    if rest:
        chunks.append(rest)
    return chunks


def _chunk_paragraphs(text: str, limit: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for paragraph in re.split(r"(?<=\n\n)", text):
        if not paragraph:
            continue
        if len(current) + len(paragraph) <= limit:
            current += paragraph
            continue
        if current:
            chunks.append(current)
            current = ""
        if len(paragraph) > limit:
            pieces = _chunk_length(paragraph, limit)
            chunks.extend(pieces[:-1])
            current = pieces[-1]
        else:
            current = paragraph
    if current:
        chunks.append(current)
    return chunks


def _fence_state(window: str) -> list[bool]:
    """For each offset in window, whether it lies inside an open code fence."""
    inside = [False] * (len(window) + 1)
    in_fence = False
    pos = 0
    for line in window.splitlines(keepends=True):
        is_fence = bool(_FENCE.match(line))
        line_state = in_fence or is_fence
        if is_fence:
            in_fence = not in_fence
        for i in range(pos + 1, pos + len(line)):
            inside[i] = line_state
        pos += len(line)
        inside[pos] = in_fence
    return inside


def _find_break(text: str, limit: int) -> int:
    """Offset (1..limit) at which to end the next chunk."""
    window = text[:limit]
    floor = limit // 4
    inside = _fence_state(window)

    def last_cut(pattern: re.Pattern[str] | str, respect_fence: bool = True) -> int | None:
        regex = re.compile(re.escape(pattern)) if isinstance(pattern, str) else pattern
        cuts = [m.end() for m in regex.finditer(window)]
        for cut in reversed(cuts):
            if cut <= floor:
                break
            if not respect_fence or not inside[cut]:
                return cut
        return None

    for pattern in ("\n\n", "\n", _SENTENCE_END, _WHITESPACE):
        cut = last_cut(pattern)
        if cut is not None:
            return cut

    # Everything breakable is inside a fence: prefer a line boundary in it.
    cut = last_cut("\n", respect_fence=False)
    return cut if cut is not None else limit


def convert_markdown_tables(text: str, mode: TableMode = "off") -> str:
    """
    Rewrite pipe tables, which Zulip renders poorly in narrow views.

    Modes:
        off: leave text unchanged.
        code: wrap each table in a code fence.
        bullets: render each row as "- header: value" lines.
    """
    if mode == "off" or "|" not in text:
        return text

    lines = text.split("\n")
    out: list[str] = []
    in_fence = False
    i = 0
    while i < len(lines):
        line = lines[i]
        if _FENCE.match(line):
            in_fence = not in_fence
        if (
            not in_fence
            and _is_table_row(line)
            and i + 1 < len(lines)
            and _TABLE_SEPARATOR.match(lines[i + 1])
        ):
            end = i + 2
            while end < len(lines) and _is_table_row(lines[end]):
                end += 1
            out.extend(_render_table(lines[i:end], mode))
            i = end
            continue
        out.append(line)
        i += 1
    return "\n".join(out)


def _is_table_row(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("|") or (stripped.count("|") >= 2 and not stripped.startswith("```"))


def _split_row(line: str) -> list[str]:
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|"):
        stripped = stripped[:-1]
    return [cell.strip() for cell in stripped.split("|")]


def _render_table(block: list[str], mode: TableMode) -> list[str]:
    if mode == "code":
        return ["```", *block, "```"]

    headers = _split_row(block[0])
    rendered: list[str] = []
    for row in block[2:]:
        cells = _split_row(row)
        if rendered:
            rendered.append("")
        for idx, cell in enumerate(cells):
            header = headers[idx] if idx < len(headers) and headers[idx] else f"Column {idx + 1}"
            rendered.append(f"- {header}: {cell}")
    return rendered

from __future__ import annotations

from collections.abc import Iterable

from agents.sessions import Speaker, Turn

SPEAKER_LABELS: dict[Speaker, str] = {
    Speaker.CALLER: "Caller",
    Speaker.ASSISTANT: "Assistant",
}

# Line prefixes that mark an echoed transcript line rather than a fresh reply.
HISTORY_PREFIXES: tuple[str, ...] = ("caller:", "assistant:", "ai:")


def speaker_label(speaker: Speaker) -> str:
    return SPEAKER_LABELS[speaker]


def render_transcript(turns: Iterable[Turn]) -> str:
    return "\n".join(f"{speaker_label(turn.speaker)}: {turn.text}" for turn in turns)


def _is_history_line(line: str) -> bool:
    return line.lower().startswith(HISTORY_PREFIXES)


def _drop_prefix(line: str) -> str:
    head, sep, tail = line.partition(":")
    if sep and head.strip().lower() in {"assistant", "ai"}:
        return tail.strip()
    return line


def strip_echoed_history(text: str) -> str:
    """Keep only the trailing block of lines that are not transcript echoes.

    If every line looks like an echo, fall back to the last line without its
    speaker prefix.
    """

    lines = [line.strip() for line in text.strip().splitlines()]
    fresh: list[str] = []
    for line in reversed(lines):
        if line and not _is_history_line(line):
            fresh.append(line)
        elif fresh:
            break

    if fresh:
        return "\n".join(reversed(fresh))

    non_empty = [line for line in lines if line]
    if not non_empty:
        return ""
    return _drop_prefix(non_empty[-1])

"""Line unfolding for raw ICS text."""

from __future__ import annotations


def unfold_lines(text: str) -> list[str]:
    """Split ICS text into logical content lines.

    Handles ``\\r\\n``, bare ``\\r`` and ``\\n`` line endings, drops empty
    lines, and joins folded continuations (lines starting with one space or
    tab) onto the previous logical line after removing that one character.

    Args:
        text: Raw ICS text

    Returns:
        Logical lines in input order. Never raises; a continuation line with
        nothing before it becomes its own line.
    """
    if not text:
        return []

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines: list[str] = []

    for physical in normalized.split("\n"):
        if not physical:
            continue
        if physical[0] in (" ", "\t"):
            continuation = physical[1:]
            if lines:
                lines[-1] += continuation
            elif continuation.strip():
                lines.append(continuation)
            continue
        if not physical.strip():
            continue
        lines.append(physical)

    return lines

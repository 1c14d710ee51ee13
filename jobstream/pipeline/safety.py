"""Content-safety scanning: prompt-injection traps hidden in job descriptions.

Some postings embed instructions aimed at automated applicants ("ignore all
previous instructions", "mention the word pineapple"). Records carrying such
text are flagged and their description sanitised before anything downstream
reads it.
"""

import logging
import re
from collections.abc import Iterable

from jobstream.core.schemas import Record

logger = logging.getLogger(__name__)

PLACEHOLDER = "[FLAGGED CONTENT REMOVED]"

# Instruction phrases. Matched case-insensitively.
_TRAP_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:ignore|disregard|forget)\s+(?:all\s+)?(?:the\s+)?(?:previous|prior|above|earlier)\s+instructions\b",
        r"\bsystem\s+prompt\b",
        r"\bbypass\b",
        r"\bact\s+as\b",
        r"\bpretend\s+(?:to\s+be|you\s+are)\b",
        r"\bif\s+you\s+are\s+an?\s+(?:ai|llm|language\s+model|bot)\b",
        r"\bsolve\s+this\s+math\b",
        r"\bwrite\s+a\s+cover\s+letter\s+about\b",
        r"\b(?:mention|include|use)\s+the\s+word\b",
        r"\bcode\s?word\b",
    )
]

# Payloads that follow an instruction: the word or phrase the trap asks for.
_PAYLOAD_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bwrite\s+a\s+cover\s+letter\s+about\s+([A-Za-z]+)", re.IGNORECASE),
    re.compile(r"\b(?:mention|include|use)\s+the\s+word\s+[\"']?([A-Za-z]+)", re.IGNORECASE),
    re.compile(r"\bcode\s?word\s*[:\-]?\s*[\"']?([A-Za-z]+(?:\s+[A-Za-z]+)?)", re.IGNORECASE),
]


def _spans(text: str) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    for pattern in _TRAP_PATTERNS:
        spans.extend(m.span() for m in pattern.finditer(text))
    for pattern in _PAYLOAD_PATTERNS:
        spans.extend(m.span(1) for m in pattern.finditer(text))
    return sorted(spans)


def find_traps(text: str) -> list[str]:
    """Return matched trap text in order of appearance, as written."""
    return [text[start:end] for start, end in _spans(text)]


def detect_flags(text: str) -> list[str]:
    """Return the distinct trap phrases in text, lowercased, first-seen order."""
    seen: set[str] = set()
    flags: list[str] = []
    for trap in find_traps(text):
        key = " ".join(trap.lower().split())
        if key not in seen:
            seen.add(key)
            flags.append(key)
    return flags


def sanitize(text: str) -> str:
    """Replace every trap phrase and payload with PLACEHOLDER.

    Spans that overlap or are separated only by whitespace collapse into one
    placeholder.
    """
    merged: list[list[int]] = []
    for start, end in _spans(text):
        if merged and not text[merged[-1][1]:start].strip():
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    for start, end in reversed(merged):
        text = text[:start] + PLACEHOLDER + text[end:]
    return text


def flag_record(record: Record) -> Record:
    """Attach flags and sanitise the description. Unflagged records pass through."""
    flags = detect_flags(f"{record.title}\n{record.description}")
    if not flags:
        return record
    logger.debug("Flagged record %s: %s", record.id, flags)
    return record.evolve(
        has_flags=True,
        flags=tuple(dict.fromkeys((*record.flags, *flags))),
        description=sanitize(record.description),
    )


def flag_records(records: Iterable[Record]) -> list[Record]:
    return [flag_record(r) for r in records]

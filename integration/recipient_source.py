"""integration/recipient_source.py

Recipient list loading for bulk sends (one address per line).

Blank lines and '#' comments are skipped; order and duplicates are preserved
since the batch sends one transfer per listed line. Addresses are not
validated here: a malformed line becomes a per-item Failed result in the batch.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from execution.errors import RecipientSourceError


def parse_recipients(lines: Iterable[str]) -> List[str]:
    recipients = []
    for line in lines:
        line = line.strip()
        if line and not line.startswith("#"):
            recipients.append(line)
    return recipients


def load_recipients(path: str) -> List[str]:
    """Load recipient addresses from file (one per line).

    Raises:
        RecipientSourceError: If the file is missing or unreadable.
    """
    p = Path(path)
    if not p.exists():
        raise RecipientSourceError(f"Recipient list not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise RecipientSourceError(f"Cannot read recipient list {path}: {e}") from e

    return parse_recipients(text.splitlines())

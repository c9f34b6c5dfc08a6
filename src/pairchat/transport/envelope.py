"""
Change payload parsing.

Payload shape: {"eventType": "INSERT" | "UPDATE", "table": str, "new": <row>}.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from pairchat.models.events import ChangeKind
from pairchat.models.message import ChangeEvent, MessageRow

logger = logging.getLogger("pairchat.transport.envelope")

SUPPORTED_KINDS = {ChangeKind.INSERT, ChangeKind.UPDATE}


def parse_change(raw: Any, table: Optional[str] = None) -> Optional[ChangeEvent]:
    """Parse a change payload. Returns None if invalid, unsupported or for another table."""
    if not isinstance(raw, dict):
        return None
    kind = str(raw.get("eventType", "")).upper()
    if kind not in SUPPORTED_KINDS:
        return None
    if table and raw.get("table") not in (None, table):
        return None
    try:
        row = MessageRow.model_validate(raw.get("new") or {})
    except ValidationError as e:
        logger.warning(f"Dropping malformed {kind} row: {e}")
        return None
    if row.id is None:
        logger.warning(f"Dropping {kind} row without id")
        return None
    return ChangeEvent(kind=kind, row=row)

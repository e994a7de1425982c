"""Cursor-based pagination helpers.

Cursor format: base64("<iso-timestamp>|<message id>")
"""
from __future__ import annotations

import base64
import binascii
from datetime import datetime

from eventro_chat.application.exceptions import ValidationError
from eventro_chat.domain.entities.message import Message

MessageCursor = tuple[datetime, int]


def encode_cursor(ts: datetime, message_id: int) -> str:
    raw = f"{ts.isoformat()}|{message_id}"
    cursor = base64.urlsafe_b64encode(raw.encode()).decode()
    return cursor.rstrip("=")


def cursor_for(message: Message) -> str:
    return encode_cursor(message.created_at, message.id)


def decode_cursor(cursor: str) -> MessageCursor:
    # Restore base64 padding if it was stripped
    padded = cursor + "=" * ((4 - len(cursor) % 4) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode()).decode()
        ts_str, id_str = raw.split("|", 1)
        return datetime.fromisoformat(ts_str), int(id_str)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Malformed pagination cursor") from exc

# vitrine_app/timeutils.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime, timezone


def utcnow() -> datetime:
    """UTC ingênuo (sem tzinfo), no mesmo formato gravado pelas colunas DateTime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value) -> datetime | None:
    """Aceita datetime, ISO-8601 (com ou sem 'Z') ou epoch em segundos."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(raw))

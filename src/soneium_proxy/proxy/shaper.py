from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from soneium_proxy.proxy.errors import UpstreamBodyError
from soneium_proxy.proxy.types import SeasonSelection

SeasonRecord = dict[str, Any]

WRAPPER_FIELDS = ("data", "seasons", "items", "results", "records")


class BodyShape(str, Enum):
    BARE_LIST = "bare_list"
    WRAPPED = "wrapped"
    SINGLE = "single"
    EMPTY = "empty"


@dataclass(frozen=True)
class SeasonRecords:
    shape: BodyShape
    records: list[SeasonRecord]
    # the top-level object itself when it carries a `season` field
    own: SeasonRecord | None = None


def _dicts(values: list[Any]) -> list[SeasonRecord]:
    return [v for v in values if isinstance(v, dict)]


def parse_season_records(body: bytes | str) -> SeasonRecords:
    """Normalize the three upstream body shapes into one list of season records.

    - bare JSON array
    - object wrapping the array under one of WRAPPER_FIELDS
    - a single season record (object with a `season` field)

    Any other JSON value yields an empty list. Non-JSON raises UpstreamBodyError.
    """
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise UpstreamBodyError("Upstream body was not valid JSON.") from e

    if isinstance(payload, list):
        return SeasonRecords(BodyShape.BARE_LIST, _dicts(payload))

    if isinstance(payload, dict):
        own = payload if "season" in payload else None
        for key in WRAPPER_FIELDS:
            inner = payload.get(key)
            if isinstance(inner, list):
                return SeasonRecords(BodyShape.WRAPPED, _dicts(inner), own=own)
        if own is not None:
            return SeasonRecords(BodyShape.SINGLE, [], own=own)

    return SeasonRecords(BodyShape.EMPTY, [])


def season_number(value: Any) -> float | None:
    """Coerce a record's `season` field to a number; None when it isn't one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def select_season(records: SeasonRecords, season: int) -> SeasonSelection:
    """The object itself if its season matches, else the first matching record, else 0."""
    if records.own is not None and season_number(records.own.get("season")) == season:
        return SeasonSelection(season=season, matched=True, value=records.own)
    for record in records.records:
        if season_number(record.get("season")) == season:
            return SeasonSelection(season=season, matched=True, value=record)
    return SeasonSelection(season=season, matched=False, value=0)


def render_selection(selection: SeasonSelection) -> bytes:
    return json.dumps(selection.value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

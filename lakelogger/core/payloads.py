"""Reading payload codec.

Readings cross two boundaries as loose JSON: sync batches from the client
(current shape) and import files exported by any earlier app version
(legacy shape). Each record's shape is resolved once here and normalized
into a :class:`Reading`; nothing downstream branches on shape.

Legacy shape (first generation app and server)::

    {"depth": 4.2, "coords": {"latitude": .., "longitude": .., "accuracy": ..},
     "hasFish": true, "createdAt": 1700000000000, "synced": false}

or the server's flat row with ``has_fish`` / ``created_at``. Those apps used
the fish button to mark weed beds, so the legacy catch boolean means
*vegetation* when no vegetation field is present.

Current shape::

    {"depth": 4.2, "latitude": .., "longitude": .., "accuracy": ..,
     "is_shoreline": false, "has_vegetation": true, "has_catch_marker": false,
     "captured_at": 1700000000000}
"""

from __future__ import annotations

import math
from typing import Any, Callable, Literal

from lakelogger.core.errors import ImportPayloadError
from lakelogger.core.models import Position, Reading, ReadingFlags, now_ms

Shape = Literal["legacy", "current"]

_LEGACY_KEYS = frozenset({"coords", "hasFish", "has_fish", "createdAt", "created_at", "synced"})
_LEGACY_CATCH_KEYS = ("hasFish", "has_fish")
_VEGETATION_KEYS = ("has_vegetation", "hasVegetation")


class _InvalidRecord(ValueError):
    pass


def classify_shape(record: dict) -> Shape:
    """Tell legacy exports from current-shape records."""
    return "legacy" if _LEGACY_KEYS & record.keys() else "current"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _depth(value: Any) -> float:
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise _InvalidRecord(f"depth {value!r} is not a number") from None
    if not _is_number(value) or not math.isfinite(value):
        raise _InvalidRecord(f"depth {value!r} is not a number")
    if value < 0:
        raise _InvalidRecord(f"depth {value} is negative")
    return float(value)


def _flag(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    raise _InvalidRecord(f"flag value {value!r} is not a boolean")


def _timestamp(value: Any, default: int) -> int:
    if value is None:
        return default
    if not _is_number(value) or not math.isfinite(value):
        raise _InvalidRecord(f"timestamp {value!r} is not epoch milliseconds")
    return int(value)


def _position(lat: Any, lon: Any, accuracy: Any) -> Position | None:
    if lat is None or lon is None:
        return None
    if not (_is_number(lat) and _is_number(lon)):
        raise _InvalidRecord(f"coordinates ({lat!r}, {lon!r}) are not numbers")
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise _InvalidRecord(f"coordinates ({lat}, {lon}) out of range")
    acc = float(accuracy) if _is_number(accuracy) else None
    return Position(float(lat), float(lon), acc)


def _first_present(record: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _normalize_legacy(record: dict, default_ts: int) -> Reading:
    coords = record.get("coords")
    if coords is not None and not isinstance(coords, dict):
        raise _InvalidRecord("coords must be an object")
    if coords:
        position = _position(coords.get("latitude"), coords.get("longitude"), coords.get("accuracy"))
    else:
        position = _position(record.get("latitude"), record.get("longitude"), record.get("accuracy"))

    catch_flag = _flag(_first_present(record, _LEGACY_CATCH_KEYS))
    if any(k in record for k in _VEGETATION_KEYS):
        has_vegetation = _flag(_first_present(record, _VEGETATION_KEYS))
        has_catch_marker = catch_flag
    else:
        has_vegetation = catch_flag
        has_catch_marker = False

    return Reading(
        depth=_depth(record.get("depth")),
        captured_at=_timestamp(_first_present(record, ("createdAt", "created_at", "captured_at")), default_ts),
        position=position,
        flags=ReadingFlags(
            is_shoreline=_flag(_first_present(record, ("isShoreline", "is_shoreline"))),
            has_vegetation=has_vegetation,
            has_catch_marker=has_catch_marker,
        ),
    )


def _normalize_current(record: dict, default_ts: int) -> Reading:
    return Reading(
        depth=_depth(record.get("depth")),
        captured_at=_timestamp(record.get("captured_at"), default_ts),
        position=_position(record.get("latitude"), record.get("longitude"), record.get("accuracy")),
        flags=ReadingFlags(
            is_shoreline=_flag(record.get("is_shoreline")),
            has_vegetation=_flag(record.get("has_vegetation")),
            has_catch_marker=_flag(record.get("has_catch_marker")),
        ),
    )


_NORMALIZERS: dict[Shape, Callable[[dict, int], Reading]] = {
    "legacy": _normalize_legacy,
    "current": _normalize_current,
}


def normalize_record(record: Any, default_ts: int | None = None) -> Reading:
    """Normalize one raw record into a PENDING :class:`Reading` without ids."""
    if not isinstance(record, dict):
        raise ImportPayloadError("invalid_record", f"expected an object, got {type(record).__name__}")
    if default_ts is None:
        default_ts = now_ms()
    try:
        return _NORMALIZERS[classify_shape(record)](record, default_ts)
    except _InvalidRecord as exc:
        raise ImportPayloadError("invalid_record", str(exc)) from None


def normalize_payload(payload: Any) -> list[Reading]:
    """Validate and normalize a whole import batch.

    Accepts either a bare list or ``{"readings": [...]}``. Raises
    :class:`ImportPayloadError` for the whole batch if anything is wrong,
    so callers can reject it before touching a store.
    """
    if isinstance(payload, dict) and "readings" in payload:
        payload = payload["readings"]
    if not isinstance(payload, list):
        raise ImportPayloadError("not_a_list", "expected a list of readings or {\"readings\": [...]}")
    if not payload:
        raise ImportPayloadError("empty", "no readings provided")

    default_ts = now_ms()
    readings = []
    for index, record in enumerate(payload):
        try:
            readings.append(normalize_record(record, default_ts))
        except ImportPayloadError as exc:
            raise ImportPayloadError(exc.reason, f"record {index}: {exc.detail}") from None
    return readings


def reading_to_payload(reading: Reading) -> dict:
    """Serialize a reading to the current wire shape."""
    pos = reading.position
    return {
        "id": reading.remote_id if reading.remote_id is not None else reading.id,
        "depth": reading.depth,
        "latitude": pos.latitude if pos else None,
        "longitude": pos.longitude if pos else None,
        "accuracy": pos.accuracy_m if pos else None,
        "is_shoreline": reading.flags.is_shoreline,
        "has_vegetation": reading.flags.has_vegetation,
        "has_catch_marker": reading.flags.has_catch_marker,
        "captured_at": reading.captured_at,
    }

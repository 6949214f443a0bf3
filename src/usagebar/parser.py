import json
from datetime import datetime, timezone
from typing import Any

import structlog

from usagebar.errors import DecodeError
from usagebar.models import UsageReading, UsageWindow

logger = structlog.get_logger()

# tried in order, first match wins. The fractional pattern also
# covers the microsecond variant with a "+HH:MM" offset that the
# endpoint actually returns.
TIMESTAMP_FORMATS: "tuple[str, ...]" = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
)


def parse_timestamp(value: "str") -> "datetime | None":
    """
    parses a reset/fetch timestamp. Tries the strict ISO-8601 form,
    then the fractional-seconds form, then falls back to
    datetime.fromisoformat. Returns None when nothing matches or the
    value carries no UTC offset; the caller keeps the utilization in
    that case.
    """
    parsed: "datetime | None" = None
    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.debug("timestamp_unparseable", value=value)
            return None

    if parsed.tzinfo is None:
        logger.debug("timestamp_without_offset", value=value)
        return None

    return parsed.astimezone(timezone.utc)


def _parse_window(key: "str", raw: "Any") -> "UsageWindow | None":
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise DecodeError(f"Failed to parse usage: '{key}' is not an object")

    utilization = raw.get("utilization")
    # bool is an int subclass, reject it explicitly
    if utilization is not None and (
        isinstance(utilization, bool) or not isinstance(utilization, (int, float))
    ):
        raise DecodeError(f"Failed to parse usage: '{key}.utilization' is not a number")

    resets_raw = raw.get("resets_at")
    if resets_raw is not None and not isinstance(resets_raw, str):
        raise DecodeError(f"Failed to parse usage: '{key}.resets_at' is not a string")

    return UsageWindow(
        utilization=float(utilization) if utilization is not None else None,
        resets_at=parse_timestamp(resets_raw) if resets_raw else None,
    )


def _parse_error(raw: "Any") -> "str | None":
    if raw is None or isinstance(raw, str):
        return raw

    # the API's own error envelope: {"type": ..., "message": ...}
    if isinstance(raw, dict):
        message = raw.get("message") or raw.get("type")
        if isinstance(message, str):
            return message

    raise DecodeError("Failed to parse usage: 'error' is not a string")


def parse_usage_response(payload: "bytes | str") -> "UsageReading":
    """
    decodes a usage payload into a UsageReading.

    Both windows and the error field are optional; only a payload that
    is not a JSON object (or has wrongly typed fields) raises
    DecodeError. When the payload carries an error, the windows are
    discarded without being decoded, so a malformed window never masks
    the upstream error.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Failed to parse usage: {exc}") from exc

    if not isinstance(data, dict):
        raise DecodeError("Failed to parse usage: expected a JSON object")

    error = _parse_error(data.get("error"))

    fetched_raw = data.get("fetched_at")
    fetched_at = (
        parse_timestamp(fetched_raw) if isinstance(fetched_raw, str) else None
    )

    if error is not None:
        return UsageReading(error=error, fetched_at=fetched_at)

    five_hour = _parse_window("five_hour", data.get("five_hour"))
    seven_day = _parse_window("seven_day", data.get("seven_day"))

    return UsageReading(
        five_hour=five_hour,
        seven_day=seven_day,
        fetched_at=fetched_at,
    )

"""
Shared field types for the signal tracking contracts.

Documents arrive from several MongoDB databases written by different
producers, so timestamps show up as BSON datetimes (naive, UTC), ISO strings
or epoch numbers. Everything is normalized to timezone-aware UTC here, once,
at the decoding boundary.
"""

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer

# Epoch values above this are taken to be milliseconds (JS Date.getTime()).
_EPOCH_MS_THRESHOLD = 1e11


def ensure_utc(v: Any) -> datetime:
    """Coerce a raw timestamp value into an aware UTC datetime.

    Raises:
        ValueError: if the value cannot be interpreted as a timestamp
    """
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    if isinstance(v, bool):
        raise ValueError(f"Invalid timestamp type {type(v)}")

    if isinstance(v, int | float):
        seconds = v / 1000.0 if abs(v) > _EPOCH_MS_THRESHOLD else float(v)
        return datetime.fromtimestamp(seconds, tz=UTC)

    if isinstance(v, str) and v.strip():
        text = v.strip()
        try:
            return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
        try:
            return ensure_utc(float(text))
        except ValueError:
            raise ValueError(f"Invalid timestamp format '{v}'") from None

    raise ValueError(f"Invalid timestamp value {v!r}")


def object_id_to_str(v: Any) -> str:
    """Render a BSON ObjectId (or any id) as its string form."""
    if v is None:
        raise ValueError("Document id is required")
    return str(v)


UTCDateTime = Annotated[datetime, BeforeValidator(ensure_utc)]

DocumentId = Annotated[str, BeforeValidator(object_id_to_str)]

# Token amounts are uint256 on chain; BSON only holds int64, so they are
# persisted as decimal strings.
TokenAmount = Annotated[
    int,
    BeforeValidator(lambda v: int(v)),
    PlainSerializer(lambda v: str(v), return_type=str),
]

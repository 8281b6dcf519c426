"""
ipname Record

The logical, version-independent name record: the fields that are signed
and published, whichever envelope scheme carries them.

Validity deadlines are kept as the exact RFC 3339 bytes that were signed;
datetimes are derived from them on demand.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import IntEnum
from typing import Any, Dict, Optional, Union

from . import config

MAX_UINT64 = (1 << 64) - 1


class ValidityType(IntEnum):
    """Validity types. EOL ("end of life" deadline) is the only one defined."""
    EOL = 0


# RFC 3339 timestamp, up to nanosecond precision
VALIDITY_PATTERN = re.compile(
    rb'(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})'
)


def format_validity(when: datetime) -> bytes:
    """
    Render a deadline the way IPNS producers do.

    Format: 2006-01-02T15:04:05.000000000Z (UTC, nine fractional digits).
    """
    if when.tzinfo is None:
        raise ValueError("validity deadline must be timezone-aware")
    utc = when.astimezone(timezone.utc)
    rendered = utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond:06d}000Z"
    return rendered.encode("ascii")


def parse_validity(validity: bytes) -> datetime:
    """
    Parse RFC 3339 validity bytes into an aware UTC datetime.

    Sub-microsecond digits are truncated.

    Raises:
        ValueError: if the bytes are not an RFC 3339 timestamp
    """
    match = VALIDITY_PATTERN.fullmatch(validity)
    if not match:
        raise ValueError(f"Invalid validity timestamp: {validity!r}")

    base, fraction, offset = match.groups()
    parsed = datetime.strptime(base.decode("ascii"), "%Y-%m-%dT%H:%M:%S")
    micros = int((fraction or b"0").decode("ascii")[:6].ljust(6, "0"))

    if offset == b"Z":
        tz = timezone.utc
    else:
        sign = -1 if offset[:1] == b"-" else 1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

    return parsed.replace(microsecond=micros, tzinfo=tz).astimezone(timezone.utc)


def ttl_to_ns(ttl: Union[int, timedelta]) -> int:
    """Convert a TTL to nanoseconds. Integers are taken as nanoseconds."""
    if isinstance(ttl, timedelta):
        return (ttl // timedelta(microseconds=1)) * 1000
    return int(ttl)


@dataclass(frozen=True)
class Record:
    """
    Logical name record.

    Fields:
    - value: opaque bytes the name points to (e.g. b"/ipfs/bafy...")
    - validity: RFC 3339 deadline bytes
    - sequence: per-name update counter
    - ttl: advisory cache lifetime in nanoseconds
    - validity_type: always EOL for records this library produces; kept as a
      plain int so foreign records with other values can be represented and
      rejected by the validator
    """
    value: bytes
    validity: bytes
    sequence: int = 0
    ttl: int = 0
    validity_type: int = int(ValidityType.EOL)

    def __post_init__(self):
        self._validate()

    def _validate(self):
        if not isinstance(self.value, bytes):
            raise ValueError("value must be bytes")
        if not isinstance(self.validity, bytes):
            raise ValueError("validity must be bytes")
        for field_name in ("sequence", "ttl", "validity_type"):
            field_value = getattr(self, field_name)
            if isinstance(field_value, bool) or not isinstance(field_value, int):
                raise ValueError(f"{field_name} must be an integer")
            if field_value < 0 or field_value > MAX_UINT64:
                raise ValueError(f"{field_name} out of range: {field_value}")

    def has_legal_validity_type(self) -> bool:
        return self.validity_type == ValidityType.EOL

    def deadline(self) -> datetime:
        """Validity deadline as an aware datetime. Raises ValueError if unparseable."""
        return parse_validity(self.validity)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.deadline()

    def value_text(self) -> str:
        """Value decoded for display."""
        return self.value.decode("utf-8", errors="replace")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display and logging."""
        return {
            "value": self.value_text(),
            "validity": self.validity.decode("ascii", errors="replace"),
            "validity_type": self.validity_type,
            "sequence": self.sequence,
            "ttl": self.ttl,
        }


def create_record(
    value: Union[str, bytes],
    sequence: int = 0,
    validity: Optional[datetime] = None,
    ttl: Optional[Union[int, timedelta]] = None,
    now: Optional[datetime] = None
) -> Record:
    """
    Factory function to create a Record.

    Args:
        value: Value to publish (str values are UTF-8 encoded)
        sequence: Sequence number (default: 0, the initial revision)
        validity: Deadline (default: now + configured lifetime)
        ttl: Cache TTL as nanoseconds or timedelta (default: configured TTL)
        now: Reference time for the default deadline

    Returns:
        Record instance
    """
    if isinstance(value, str):
        value = value.encode("utf-8")
    if validity is None:
        validity = (now or datetime.now(timezone.utc)) + config.default_lifetime()
    ttl_ns = config.default_ttl_ns() if ttl is None else ttl_to_ns(ttl)

    return Record(
        value=value,
        validity=format_validity(validity),
        sequence=sequence,
        ttl=ttl_ns,
    )


def next_record(
    previous: Record,
    value: Union[str, bytes],
    validity: Optional[datetime] = None,
    ttl: Optional[Union[int, timedelta]] = None,
    now: Optional[datetime] = None
) -> Record:
    """Build the record that supersedes `previous`, with sequence + 1."""
    if previous.sequence >= MAX_UINT64:
        raise OverflowError("sequence space exhausted for this name")
    return create_record(value, sequence=previous.sequence + 1, validity=validity, ttl=ttl, now=now)

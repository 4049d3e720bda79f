"""
Date Codec

Structural converter between domain values (which may hold dates) and their
portable form, where every date is an integer number of milliseconds since
the Unix epoch. Everything that is not a date is copied through unchanged.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AbstractSet, Any, Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

# Builds the store's native timestamp type from epoch milliseconds
TimestampFactory = Callable[[int], Any]


def datetime_to_millis(value: datetime) -> int:
    """Epoch milliseconds of a datetime; naive values are read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // _ONE_MS


def millis_to_datetime(millis: int) -> datetime:
    """Aware UTC datetime for epoch milliseconds."""
    return EPOCH + timedelta(milliseconds=millis)


# Epoch milliseconds a datetime can represent
MIN_MILLIS = datetime_to_millis(datetime.min.replace(tzinfo=timezone.utc))
MAX_MILLIS = datetime_to_millis(datetime.max.replace(tzinfo=timezone.utc))


@dataclass(frozen=True)
class PortableDate:
    """
    Tagged portable date: an instant as epoch milliseconds.

    Adapters that hold their own timestamp types hand the codec a
    ``PortableDate`` (or an object implementing ``SupportsPortableDate``)
    instead of relying on the codec to guess.
    """
    value: int
    kind: str = "millis"

    @classmethod
    def from_datetime(cls, value: datetime) -> 'PortableDate':
        return cls(datetime_to_millis(value))

    @classmethod
    def from_date(cls, value: date) -> 'PortableDate':
        """Calendar dates map to midnight UTC."""
        return cls.from_datetime(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))

    def to_datetime(self) -> datetime:
        return millis_to_datetime(self.value)


@runtime_checkable
class SupportsPortableDate(Protocol):
    """Timestamp types that can describe themselves as a PortableDate."""

    def to_portable_date(self) -> PortableDate:
        ...


class DateCodec:
    """
    Bidirectional date converter for backup records.

    ``to_portable`` turns every date it finds (``datetime``, ``date``,
    ``PortableDate`` or ``SupportsPortableDate``) into epoch milliseconds.
    ``to_domain`` reverses it: given the names of the date fields, only
    integers stored under those names become dates; without field names,
    every non-boolean integer does. Integers outside the range a datetime
    can represent are left as they are, so decoding never fails.

    Store timestamp types are recognized only through ``SupportsPortableDate``:
    an adapter whose documents hold its own timestamp objects must give them
    a ``to_portable_date()`` method (or hand over ``PortableDate`` values).
    Other objects pass through unchanged.

    Decoded dates are aware UTC datetimes unless the codec was given a
    timestamp factory for the destination store. A factory that does not
    work in the current process is dropped at construction time and the
    codec keeps using datetimes.

    Example:
        ```python
        codec = DateCodec()
        portable = codec.to_portable({"birthDate": datetime(2023, 11, 14, tzinfo=timezone.utc)})
        # {"birthDate": 1699920000000}
        record = codec.to_domain(portable, date_fields={"birthDate"})
        ```
    """

    def __init__(self, timestamp_factory: Optional[TimestampFactory] = None):
        self._timestamp_factory = self._resolve_factory(timestamp_factory)

    @staticmethod
    def _resolve_factory(factory: Optional[TimestampFactory]) -> Optional[TimestampFactory]:
        if factory is None:
            return None
        if not callable(factory):
            logger.warning(f"Ignoring non-callable timestamp factory: {factory!r}")
            return None
        try:
            factory(0)
        except Exception as e:
            logger.warning(f"Timestamp factory is not usable here, decoding to datetime instead: {e}")
            return None
        return factory

    @property
    def uses_native_timestamps(self) -> bool:
        return self._timestamp_factory is not None

    def make_date(self, millis: int) -> Any:
        """Build a domain date for epoch milliseconds."""
        if self._timestamp_factory is not None:
            return self._timestamp_factory(millis)
        return millis_to_datetime(millis)

    def to_portable(self, value: Any) -> Any:
        """
        Convert a domain value to its portable form.

        Args:
            value: Any value reachable from a domain record

        Returns:
            Copy of the value with every date replaced by epoch milliseconds
        """
        if value is None:
            return None
        if isinstance(value, PortableDate):
            return value.value
        if isinstance(value, datetime):
            return datetime_to_millis(value)
        if isinstance(value, date):
            return PortableDate.from_date(value).value
        if isinstance(value, (list, tuple)):
            return [self.to_portable(item) for item in value]
        if isinstance(value, Mapping):
            return {key: self.to_portable(item) for key, item in value.items()}
        if isinstance(value, SupportsPortableDate):
            return value.to_portable_date().value
        return value

    def to_domain(self, value: Any, date_fields: Optional[AbstractSet[str]] = None) -> Any:
        """
        Convert a portable value back to its domain form.

        Args:
            value: Portable value
            date_fields: Field names holding dates, matched at any depth.
                         None converts every non-boolean integer.

        Returns:
            Copy of the value with the selected integers turned into dates
        """
        if date_fields is None:
            return self._decode_all(value)
        return self._decode_fields(value, date_fields, False)

    def _decode_millis(self, millis: int) -> Any:
        if not MIN_MILLIS <= millis <= MAX_MILLIS:
            logger.debug(f"Leaving out-of-range timestamp {millis} undecoded")
            return millis
        return self.make_date(millis)

    def _decode_all(self, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, int):
            return self._decode_millis(value)
        if isinstance(value, list):
            return [self._decode_all(item) for item in value]
        if isinstance(value, Mapping):
            return {key: self._decode_all(item) for key, item in value.items()}
        return value

    def _decode_fields(self, value: Any, date_fields: AbstractSet[str], is_date_field: bool) -> Any:
        if value is None:
            return None
        if is_date_field and isinstance(value, int) and not isinstance(value, bool):
            return self._decode_millis(value)
        if isinstance(value, list):
            return [self._decode_fields(item, date_fields, is_date_field) for item in value]
        if isinstance(value, Mapping):
            return {
                key: self._decode_fields(item, date_fields, key in date_fields)
                for key, item in value.items()
            }
        return value


_default_codec = DateCodec()


def to_portable(value: Any) -> Any:
    """Convert a domain value with the default codec."""
    return _default_codec.to_portable(value)


def to_domain(value: Any, date_fields: Optional[AbstractSet[str]] = None) -> Any:
    """Convert a portable value with the default codec."""
    return _default_codec.to_domain(value, date_fields)

"""Error taxonomy for COMTRADE decoding.

Every failure raised while decoding a record derives from
:class:`ComtradeError` (itself a ``ValueError``).  Errors carry a stack of
field labels that grows as the error propagates outward through nested
readers, so a malformed analog channel count surfaces as
``channel sizes: analog: invalid value 'x' (expected int)``.
"""

from contextlib import contextmanager
from typing import List, Optional


class ComtradeError(ValueError):
    """Base class for all decoding failures."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.labels: List[str] = []
        if field:
            self.labels.append(field)

    def add_context(self, label: str) -> "ComtradeError":
        """Prepend an outer field label and return ``self`` for re-raising."""
        self.labels.insert(0, label)
        return self

    @property
    def field(self) -> Optional[str]:
        """Colon-joined field label, outermost first, or None."""
        if not self.labels:
            return None
        return ": ".join(self.labels)

    def __str__(self):
        if self.labels:
            return f"{self.field}: {self.message}"
        return self.message


@contextmanager
def error_context(label: str):
    """Attach *label* to any :class:`ComtradeError` leaving the block."""
    try:
        yield
    except ComtradeError as e:
        raise e.add_context(label)


# -- Configuration grammar -----------------------------------------------------

class MissingLineElementsError(ComtradeError):
    """A stanza had fewer fields than required."""

    def __init__(self, expected: int, found: int, field: Optional[str] = None):
        super().__init__(
            f"expected {expected} fields, found {found}", field=field
        )
        self.expected = expected
        self.found = found


class UnexpectedLineElementsError(ComtradeError):
    """A fixed-width stanza had more fields than allowed."""

    def __init__(self, expected: int, found: int, field: Optional[str] = None):
        super().__init__(
            f"expected {expected} fields, found {found}", field=field
        )
        self.expected = expected
        self.found = found


class InvalidValueError(ComtradeError):
    """A token failed to parse as its expected type."""

    def __init__(self, value: str, expected: str,
                 field: Optional[str] = None):
        super().__init__(
            f"invalid value {value!r} (expected {expected})", field=field
        )
        self.value = value
        self.expected = expected


class UnexpectedEndOfInputError(ComtradeError):
    """The configuration ended before the grammar was satisfied."""

    def __init__(self, field: Optional[str] = None):
        super().__init__("unexpected end of configuration input", field=field)


class BadRevisionError(ComtradeError):
    """The identity line named an unknown format revision."""

    def __init__(self, token: str):
        super().__init__(
            f"unknown format revision {token!r} "
            f"(expected 1991, 1999 or 2013)"
        )
        self.token = token


class InvalidNormalStatusError(ComtradeError):
    """A status channel declared a normal state other than 0 or 1."""

    def __init__(self, index: int, value: str):
        super().__init__(
            f"normal status value of channel {index} must be 0 or 1, "
            f"got {value!r}"
        )
        self.index = index
        self.value = value


class TimestampPrecisionError(ComtradeError):
    """A start/trigger time carried no fractional-second digits."""

    def __init__(self, token: str):
        super().__init__(
            f"cannot determine timestamp precision of {token!r} "
            f"(no fractional seconds)"
        )
        self.token = token


class MissingFieldError(ComtradeError):
    """A record was finalized with a required field still unset."""

    def __init__(self, name: str):
        super().__init__(f"required field {name!r} was never set")
        self.name = name


# -- Data decoding -------------------------------------------------------------

class DecodeError(ComtradeError):
    """Lower-level failure while decoding sample data or a container."""


class TruncatedDataError(DecodeError):
    """Binary sample data ended before the declared record count."""

    def __init__(self, expected_bytes: int, actual_bytes: int):
        super().__init__(
            f"binary data truncated: expected {expected_bytes} bytes, "
            f"got {actual_bytes}"
        )
        self.expected_bytes = expected_bytes
        self.actual_bytes = actual_bytes


class MissingTimestampError(DecodeError):
    """A timestamp-critical sample had no stored timestamp."""

    def __init__(self, sample_number: int):
        super().__init__(
            f"sample {sample_number}: stored timestamp required when no "
            f"sampling rates are declared"
        )
        self.sample_number = sample_number


class UnsupportedFeatureError(DecodeError):
    """The input uses a feature this decoder does not implement."""

"""Decoded COMTRADE record and its channel types.

A :class:`Record` is an immutable snapshot: every numpy array it holds is
marked read-only.  Records are produced by :meth:`RecordDraft.finalize`,
which checks that decoding populated every required field.
"""

import datetime as _dt
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .errors import MissingFieldError

try:
    import pandas as pd
    HAS_PANDAS = True
except ImportError:
    HAS_PANDAS = False


# -- Enumerations --------------------------------------------------------------

class FormatRevision(Enum):
    """Standard revision named on the configuration identity line."""

    REV_1991 = "1991"
    REV_1999 = "1999"
    REV_2013 = "2013"

    @property
    def date_format(self) -> str:
        """``strptime`` layout of the start/trigger dates."""
        if self is FormatRevision.REV_1991:
            return "%m/%d/%Y"
        return "%d/%m/%Y"


class DataFormat(Enum):
    """Encoding of the sample data file."""

    ASCII = "ascii"
    BINARY16 = "binary"
    BINARY32 = "binary32"
    FLOAT32 = "float32"

    @classmethod
    def from_token(cls, token: str) -> "DataFormat":
        return cls(token.strip().lower())

    @property
    def is_binary(self) -> bool:
        return self is not DataFormat.ASCII

    @property
    def sample_dtype(self) -> Optional[np.dtype]:
        """Little-endian dtype of one analog sample, None for ASCII."""
        return {
            DataFormat.BINARY16: np.dtype("<i2"),
            DataFormat.BINARY32: np.dtype("<i4"),
            DataFormat.FLOAT32: np.dtype("<f4"),
        }.get(self)


class TimePrecision(Enum):
    """Base unit of stored sample timestamps, in seconds."""

    MICROSECONDS = 1e-6
    NANOSECONDS = 1e-9

    @property
    def base_unit(self) -> float:
        return self.value

    def finer(self, other: "TimePrecision") -> "TimePrecision":
        """Return the finer of two precisions."""
        if self.value <= other.value:
            return self
        return other


class AnalogScalingMode(Enum):
    """Whether analog values are expressed in primary or secondary units."""

    PRIMARY = "p"
    SECONDARY = "s"

    @classmethod
    def from_token(cls, token: str) -> "AnalogScalingMode":
        return cls(token.strip().lower())


class ClockState(Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    FAILURE = "failure"


class LeapSecondStatus(Enum):
    NO_CAPABILITY = "3"
    SUBTRACTED = "2"
    ADDED = "1"
    NOT_PRESENT = "0"

    @classmethod
    def from_token(cls, token: str) -> "LeapSecondStatus":
        return cls(token.strip())


@dataclass(frozen=True)
class TimeQuality:
    """Clock quality of the recording device.

    ``exponent`` is the power of ten (in seconds) the clock is reliable to
    while unlocked, and None otherwise.
    """

    state: ClockState
    exponent: Optional[int] = None

    @classmethod
    def from_code(cls, code: str) -> "TimeQuality":
        """Decode a single-character time quality code (``0``-``9``, ``A``,
        ``B`` or ``F``)."""
        code = code.strip().lower()
        if code == "f":
            return cls(ClockState.FAILURE)
        if code == "b":
            return cls(ClockState.UNLOCKED, 1)
        if code == "a":
            return cls(ClockState.UNLOCKED, 0)
        if len(code) == 1 and code in "123456789":
            return cls(ClockState.UNLOCKED, int(code) - 10)
        if code == "0":
            return cls(ClockState.LOCKED)
        raise ValueError(f"invalid time quality code {code!r}")


# -- Configuration and channel types -------------------------------------------

@dataclass(frozen=True)
class SamplingRate:
    """One segment of the sampling-rate table."""

    rate_hz: float
    end_sample_number: int


@dataclass(frozen=True)
class AnalogConfig:
    index: int
    name: str
    phase: str
    circuit_component_being_monitored: str
    units: str
    multiplier: float
    offset_adder: float
    skew: float
    min_value: float
    max_value: float
    primary_factor: float
    secondary_factor: float
    scaling_mode: AnalogScalingMode


@dataclass(frozen=True)
class StatusConfig:
    index: int
    name: str
    phase: str
    circuit_component_being_monitored: str
    normal_status_value: int


def _frozen_array(values, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class AnalogChannel:
    """Analog channel configuration plus scaled samples (float64)."""

    config: AnalogConfig
    data: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "data", _frozen_array(self.data, np.float64))

    @property
    def name(self) -> str:
        return self.config.name


@dataclass(frozen=True, eq=False)
class StatusChannel:
    """Status channel configuration plus 0/1 samples (uint8)."""

    config: StatusConfig
    data: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "data", _frozen_array(self.data, np.uint8))

    @property
    def name(self) -> str:
        return self.config.name


# -- Record --------------------------------------------------------------------

@dataclass(frozen=True, eq=False, repr=False)
class Record:
    """A fully decoded COMTRADE recording.

    ``timestamps`` holds seconds relative to ``start_time``, one entry per
    sample.  ``start_time`` and ``trigger_time`` are ``datetime64[ns]``.
    Fields introduced by later revisions are None for older files, and
    ``timestamp_multiplication_factor`` is 1.0 for 1991 files.
    """

    station_name: str
    recording_device_id: str
    revision: FormatRevision
    sample_numbers: np.ndarray
    timestamps: np.ndarray
    analog_channels: Tuple[AnalogChannel, ...]
    status_channels: Tuple[StatusChannel, ...]
    line_frequency: float
    sampling_rates: Tuple[SamplingRate, ...]
    start_time: np.datetime64
    trigger_time: np.datetime64
    data_format: DataFormat
    time_precision: TimePrecision
    timestamp_multiplication_factor: float = 1.0
    time_offset: Optional[_dt.timezone] = None
    local_offset: Optional[_dt.timezone] = None
    time_quality: Optional[TimeQuality] = None
    leap_second_status: Optional[LeapSecondStatus] = None
    header_text: Optional[str] = field(default=None, repr=False)
    info_text: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        object.__setattr__(
            self, "sample_numbers", _frozen_array(self.sample_numbers, np.uint32)
        )
        object.__setattr__(
            self, "timestamps", _frozen_array(self.timestamps, np.float64)
        )
        object.__setattr__(self, "analog_channels", tuple(self.analog_channels))
        object.__setattr__(self, "status_channels", tuple(self.status_channels))
        object.__setattr__(self, "sampling_rates", tuple(self.sampling_rates))
        object.__setattr__(
            self, "start_time", np.datetime64(self.start_time, "ns")
        )
        object.__setattr__(
            self, "trigger_time", np.datetime64(self.trigger_time, "ns")
        )

        n = len(self.sample_numbers)
        if len(self.timestamps) != n:
            raise ValueError(
                "sample_numbers and timestamps must have the same length"
            )
        for ch in self.analog_channels + self.status_channels:
            if len(ch.data) != n:
                raise ValueError(
                    f"channel {ch.name!r} has {len(ch.data)} samples, "
                    f"expected {n}"
                )

    # -- Properties ------------------------------------------------------------

    @property
    def total_samples(self) -> int:
        return len(self.sample_numbers)

    @property
    def trigger_offset(self) -> float:
        """Seconds from ``start_time`` to ``trigger_time``."""
        delta = self.trigger_time - self.start_time
        return float(delta / np.timedelta64(1, "ns")) * 1e-9

    @property
    def timestamp_critical(self) -> bool:
        """True when sample times come from stored timestamps."""
        return len(self.sampling_rates) == 0

    # -- Lookup ----------------------------------------------------------------

    def analog_channel(self, name: str) -> AnalogChannel:
        """Return the first analog channel called *name*."""
        for ch in self.analog_channels:
            if ch.name == name:
                return ch
        raise KeyError(f"No analog channel named {name!r}")

    def status_channel(self, name: str) -> StatusChannel:
        """Return the first status channel called *name*."""
        for ch in self.status_channels:
            if ch.name == name:
                return ch
        raise KeyError(f"No status channel named {name!r}")

    def absolute_times(self) -> np.ndarray:
        """Per-sample ``datetime64[ns]`` times (start time plus offset)."""
        offsets = np.round(self.timestamps * 1e9).astype(np.int64)
        return self.start_time + offsets.astype("timedelta64[ns]")

    # -- Export ----------------------------------------------------------------

    def to_dataframe(self):
        """Return the samples as a pandas DataFrame.

        The first column ``time`` holds seconds since ``start_time``; one
        column per analog then status channel follows.  Repeated channel
        names are suffixed with the channel index.

        Raises
        ------
        ImportError
            If pandas is not installed.
        """
        if not HAS_PANDAS:
            raise ImportError(
                "pandas is required for to_dataframe(). "
                "Install with: pip install comtradekit[dataframe]"
            )

        columns = {"time": np.array(self.timestamps)}
        for ch in self.analog_channels + self.status_channels:
            name = ch.name
            if name in columns:
                name = f"{name}_{ch.config.index}"
            columns[name] = np.array(ch.data)
        return pd.DataFrame(columns)

    def summary(self) -> str:
        """Multi-line human-readable description of the record."""
        lines = [
            f"Record: {self.station_name} / {self.recording_device_id} "
            f"(rev {self.revision.value}, {self.data_format.value})",
            f"  start: {self.start_time}, trigger: {self.trigger_time}",
            f"  channels: {len(self.analog_channels)} analog, "
            f"{len(self.status_channels)} status, "
            f"{self.total_samples} samples",
        ]
        if self.sampling_rates:
            rates = ", ".join(
                f"{r.rate_hz:g} Hz to #{r.end_sample_number}"
                for r in self.sampling_rates
            )
            lines.append(f"  rates: {rates}")
        else:
            lines.append(
                f"  rates: timestamp-critical "
                f"(x{self.timestamp_multiplication_factor:g})"
            )
        if self.total_samples:
            lines.append(
                f"  time=[{self.timestamps[0]:.6f}..{self.timestamps[-1]:.6f}] s"
            )
        return "\n".join(lines)

    def __repr__(self):
        return self.summary()


# -- Draft ---------------------------------------------------------------------

_OPTIONAL_FIELDS = frozenset({
    "time_offset", "local_offset", "time_quality", "leap_second_status",
    "header_text", "info_text",
})


@dataclass
class RecordDraft:
    """Mutable accumulator filled in while decoding.

    Every field starts unset; :meth:`finalize` checks completeness once and
    builds the immutable :class:`Record`.
    """

    station_name: Optional[str] = None
    recording_device_id: Optional[str] = None
    revision: Optional[FormatRevision] = None
    sample_numbers: Optional[np.ndarray] = None
    timestamps: Optional[np.ndarray] = None
    analog_channels: Optional[List[AnalogChannel]] = None
    status_channels: Optional[List[StatusChannel]] = None
    line_frequency: Optional[float] = None
    sampling_rates: Optional[List[SamplingRate]] = None
    start_time: Optional[np.datetime64] = None
    trigger_time: Optional[np.datetime64] = None
    data_format: Optional[DataFormat] = None
    time_precision: Optional[TimePrecision] = None
    timestamp_multiplication_factor: Optional[float] = None
    time_offset: Optional[_dt.timezone] = None
    local_offset: Optional[_dt.timezone] = None
    time_quality: Optional[TimeQuality] = None
    leap_second_status: Optional[LeapSecondStatus] = None
    header_text: Optional[str] = None
    info_text: Optional[str] = None

    def finalize(self) -> Record:
        """Validate the draft and return the frozen :class:`Record`.

        Raises
        ------
        MissingFieldError
            Naming the first required field that is still unset.
        """
        values = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None and f.name not in _OPTIONAL_FIELDS:
                raise MissingFieldError(f.name)
            values[f.name] = value
        return Record(**values)

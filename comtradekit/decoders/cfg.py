"""Configuration (``.cfg``) grammar parser.

The grammar is line oriented and branches on the revision token of the
identity line: 1991 files stop after the data-format line, 1999 files add
the timestamp multiplication factor and 2013 files add UTC offsets, time
quality and leap-second status.
"""

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..errors import (
    BadRevisionError,
    InvalidNormalStatusError,
    InvalidValueError,
    error_context,
)
from ..record import (
    AnalogConfig,
    AnalogScalingMode,
    DataFormat,
    FormatRevision,
    LeapSecondStatus,
    SamplingRate,
    StatusConfig,
    TimePrecision,
    TimeQuality,
)
from ..timebase import parse_time_offset, time_precision
from .tokens import LineReader, TokenCursor

logger = logging.getLogger(__name__)

ANALOG_FIELDS = 13
STATUS_FIELDS = 5


@dataclass(frozen=True)
class ConfigResult:
    """Everything declared by a configuration file."""

    station_name: str
    recording_device_id: str
    revision: FormatRevision
    analog_configs: Tuple[AnalogConfig, ...]
    status_configs: Tuple[StatusConfig, ...]
    line_frequency: float
    sampling_rates: Tuple[SamplingRate, ...]
    start_time: np.datetime64
    trigger_time: np.datetime64
    time_precision: TimePrecision
    data_format: DataFormat
    timestamp_multiplication_factor: float = 1.0
    time_offset: Optional[_dt.timezone] = None
    local_offset: Optional[_dt.timezone] = None
    time_quality: Optional[TimeQuality] = None
    leap_second_status: Optional[LeapSecondStatus] = None

    @property
    def num_analog(self) -> int:
        return len(self.analog_configs)

    @property
    def num_status(self) -> int:
        return len(self.status_configs)

    @property
    def timestamp_critical(self) -> bool:
        """True when no sampling rates are declared."""
        return len(self.sampling_rates) == 0

    @property
    def total_samples(self) -> Optional[int]:
        """Largest end-sample number, or None when timestamp-critical."""
        if not self.sampling_rates:
            return None
        return max(r.end_sample_number for r in self.sampling_rates)


# -- Token parsers -------------------------------------------------------------

def _positive_int(token: str) -> int:
    value = int(token)
    if value < 1:
        raise ValueError(token)
    return value


def _non_negative_int(token: str) -> int:
    value = int(token)
    if value < 0:
        raise ValueError(token)
    return value


def _is_ascii_digits(token: str) -> bool:
    return token.isascii() and token.isdigit()


# -- Stanzas -------------------------------------------------------------------

def parse_identity(line: str) -> Tuple[str, str, FormatRevision]:
    """Parse ``station,device[,revision]``; a missing revision means 1991."""
    cursor = TokenCursor.from_line(line, 2)
    station = cursor.read_str("station name")
    device = cursor.read_str("recording device id")
    token = cursor.read_optional()
    if not token:
        return station, device, FormatRevision.REV_1991
    try:
        return station, device, FormatRevision(token)
    except ValueError:
        raise BadRevisionError(token) from None


def parse_channel_counts(line: str) -> Tuple[int, int]:
    """Parse ``total,<N>A,<M>D`` and return ``(N, M)``."""
    cursor = TokenCursor.from_line(line, 3, 3)
    total = cursor.read(_non_negative_int, "total", "non-negative int")
    num_analog = cursor.read_with_suffix(
        _non_negative_int, "analog", "non-negative int"
    )
    num_status = cursor.read_with_suffix(
        _non_negative_int, "status", "non-negative int"
    )
    if total != num_analog + num_status:
        logger.warning(
            "Channel total %d does not match %d analog + %d status",
            total, num_analog, num_status,
        )
    return num_analog, num_status


def parse_analog_row(line: str) -> AnalogConfig:
    cursor = TokenCursor.from_line(line, ANALOG_FIELDS, ANALOG_FIELDS)
    return AnalogConfig(
        index=cursor.read(_positive_int, "index", "positive int"),
        name=cursor.read_str("name"),
        phase=cursor.read_str("phase"),
        circuit_component_being_monitored=cursor.read_str(
            "circuit component being monitored"
        ),
        units=cursor.read_str("units"),
        multiplier=cursor.read(float, "multiplier"),
        offset_adder=cursor.read(float, "offset adder"),
        skew=cursor.read(float, "skew"),
        min_value=cursor.read(float, "min value"),
        max_value=cursor.read(float, "max value"),
        primary_factor=cursor.read(float, "primary factor"),
        secondary_factor=cursor.read(float, "secondary factor"),
        scaling_mode=cursor.read(
            AnalogScalingMode.from_token, "scaling mode", "p or s"
        ),
    )


def parse_status_row(line: str) -> StatusConfig:
    cursor = TokenCursor.from_line(line, STATUS_FIELDS, STATUS_FIELDS)
    index = cursor.read(_positive_int, "index", "positive int")
    name = cursor.read_str("name")
    phase = cursor.read_str("phase")
    component = cursor.read_str("circuit component being monitored")
    normal = cursor.read_str("normal status value")
    if normal not in ("0", "1"):
        raise InvalidNormalStatusError(index, normal)
    return StatusConfig(
        index=index,
        name=name,
        phase=phase,
        circuit_component_being_monitored=component,
        normal_status_value=int(normal),
    )


def parse_sampling_rate(line: str) -> SamplingRate:
    cursor = TokenCursor.from_line(line, 2, 2)
    return SamplingRate(
        rate_hz=cursor.read(float, "rate"),
        end_sample_number=cursor.read(
            _non_negative_int, "end sample number", "non-negative int"
        ),
    )


def parse_date_time(line: str, revision: FormatRevision
                    ) -> Tuple[np.datetime64, TimePrecision]:
    """Parse a ``date,hh:mm:ss.fff`` line.

    Returns
    -------
    stamp : np.datetime64
        Nanosecond-resolution timestamp.
    precision : TimePrecision
        Inferred from the number of fractional-second digits.
    """
    cursor = TokenCursor.from_line(line, 2, 2)
    date_token = cursor.read_str("date")
    time_token = cursor.read_str("time")

    try:
        date = _dt.datetime.strptime(date_token, revision.date_format).date()
    except ValueError:
        raise InvalidValueError(date_token, "date", field="date") from None

    with error_context("time"):
        precision = time_precision(time_token)

    clock, _, fraction = time_token.rpartition(".")
    try:
        parts = clock.split(":")
        if not all(_is_ascii_digits(p) for p in parts + [fraction]):
            raise ValueError(time_token)
        hours, minutes, seconds = (int(part) for part in parts)
        if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds <= 60):
            raise ValueError(clock)
        # Digits beyond nanoseconds are dropped
        nanos = int(fraction[:9].ljust(9, "0"))
    except ValueError:
        raise InvalidValueError(time_token, "time", field="time") from None

    stamp = (
        np.datetime64(date.isoformat(), "ns")
        + np.timedelta64(hours * 3600 + minutes * 60 + seconds, "s")
        + np.timedelta64(nanos, "ns")
    )
    return stamp, precision


# -- Full grammar --------------------------------------------------------------

def parse_cfg(text: str) -> ConfigResult:
    """Parse the text of a configuration file.

    Parameters
    ----------
    text : str
        Decoded configuration file contents.

    Returns
    -------
    ConfigResult

    Raises
    ------
    ComtradeError
        On the first grammar violation, labelled with the stanza and field.
    """
    lines = LineReader.from_text(text)

    with error_context("station identity"):
        station, device, revision = parse_identity(lines.next_line())
    logger.debug("Configuration revision %s for %s/%s",
                 revision.value, station, device)

    with error_context("channel sizes"):
        num_analog, num_status = parse_channel_counts(lines.next_line())

    analog_configs: List[AnalogConfig] = []
    for k in range(1, num_analog + 1):
        with error_context(f"analog channel {k}"):
            analog_configs.append(parse_analog_row(lines.next_line()))

    status_configs: List[StatusConfig] = []
    for k in range(1, num_status + 1):
        with error_context(f"status channel {k}"):
            status_configs.append(parse_status_row(lines.next_line()))

    with error_context("line frequency"):
        cursor = lines.next_cursor(1, 1)
        line_frequency = cursor.read(float, "frequency")

    with error_context("sampling rates"):
        cursor = lines.next_cursor(1, 1)
        num_rates = cursor.read(_non_negative_int, "count", "non-negative int")
    sampling_rates: List[SamplingRate] = []
    for k in range(1, num_rates + 1):
        with error_context(f"sampling rate {k}"):
            sampling_rates.append(parse_sampling_rate(lines.next_line()))
    if num_rates == 0:
        # Declared sample count line; sample times come from stored timestamps
        with error_context("sampling rates: total samples"):
            lines.next_line()
        logger.debug("No sampling rates declared, timestamps are critical")

    with error_context("start time"):
        start_time, start_precision = parse_date_time(lines.next_line(), revision)
    with error_context("trigger time"):
        trigger_time, trigger_precision = parse_date_time(
            lines.next_line(), revision
        )
    if start_precision is not trigger_precision:
        logger.warning(
            "Start and trigger times use different precisions (%s, %s), "
            "using the finer", start_precision.name, trigger_precision.name,
        )
    precision = start_precision.finer(trigger_precision)

    with error_context("data format"):
        cursor = lines.next_cursor(1, 1)
        data_format = cursor.read(DataFormat.from_token, "format", "data format")

    extra = {}
    if revision is not FormatRevision.REV_1991:
        with error_context("timestamp multiplication factor"):
            cursor = lines.next_cursor(1, 1)
            extra["timestamp_multiplication_factor"] = cursor.read(
                float, "factor"
            )

    if revision is FormatRevision.REV_2013:
        with error_context("time offsets"):
            cursor = lines.next_cursor(2, 2)
            extra["time_offset"] = cursor.read(
                parse_time_offset, "time code", "time offset"
            )
            extra["local_offset"] = cursor.read(
                parse_time_offset, "local code", "time offset"
            )
        with error_context("time quality"):
            cursor = lines.next_cursor(2, 2)
            extra["time_quality"] = cursor.read(
                TimeQuality.from_code, "time quality code", "time quality code"
            )
            extra["leap_second_status"] = cursor.read(
                LeapSecondStatus.from_token, "leap second", "leap second code"
            )

    trailing = [line for line in lines.remaining_lines() if line.strip()]
    if trailing:
        logger.debug("Ignoring %d trailing configuration lines", len(trailing))

    return ConfigResult(
        station_name=station,
        recording_device_id=device,
        revision=revision,
        analog_configs=tuple(analog_configs),
        status_configs=tuple(status_configs),
        line_frequency=line_frequency,
        sampling_rates=tuple(sampling_rates),
        start_time=start_time,
        trigger_time=trigger_time,
        time_precision=precision,
        data_format=data_format,
        **extra,
    )

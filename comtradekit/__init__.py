"""comtradekit: decoder for COMTRADE power-system transient recordings."""

__version__ = "0.1.0"

from .errors import (
    ComtradeError,
    MissingLineElementsError,
    UnexpectedLineElementsError,
    InvalidValueError,
    UnexpectedEndOfInputError,
    BadRevisionError,
    InvalidNormalStatusError,
    TimestampPrecisionError,
    MissingFieldError,
    DecodeError,
    TruncatedDataError,
    MissingTimestampError,
    UnsupportedFeatureError,
)
from .record import (
    Record, RecordDraft,
    AnalogChannel, AnalogConfig, StatusChannel, StatusConfig, SamplingRate,
    FormatRevision, DataFormat, TimePrecision, AnalogScalingMode,
    ClockState, TimeQuality, LeapSecondStatus,
)
from .timebase import Timebase, parse_time_offset, time_precision
from .parser import ComtradeParser, load_comtrade

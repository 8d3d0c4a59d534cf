"""Sample-time reconstruction.

Sample times come either from the sampling-rate table (``(n - 1) / rate``)
or, when the configuration declares no rates, from the timestamps stored
alongside each sample scaled by the base unit and multiplication factor.
"""

import datetime as _dt
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import (
    InvalidValueError,
    MissingTimestampError,
    TimestampPrecisionError,
)
from .record import SamplingRate, TimePrecision

# Fractional-second digits beyond this imply nanosecond timestamps
_MICROSECOND_DIGITS = 6

# Rate used when a sample number lies beyond every rate segment
_FALLBACK_RATE_HZ = 1.0


# -- Time precision ------------------------------------------------------------

def time_precision(time_token: str) -> TimePrecision:
    """Infer the timestamp base unit from a ``hh:mm:ss.ffffff`` token.

    Up to 6 fractional digits means microseconds, 7 or more nanoseconds.

    Raises
    ------
    TimestampPrecisionError
        If the token has no fractional-second digits.
    """
    _, sep, fraction = time_token.strip().rpartition(".")
    if not sep or not fraction:
        raise TimestampPrecisionError(time_token)
    if len(fraction) <= _MICROSECOND_DIGITS:
        return TimePrecision.MICROSECONDS
    return TimePrecision.NANOSECONDS


# -- Time offsets --------------------------------------------------------------

def parse_time_offset(token: str) -> Optional[_dt.timezone]:
    """Parse a UTC offset such as ``-4``, ``+10h30``, ``-7h15`` or ``x``.

    ``x`` (not applicable) gives None.  For the ``<hours>h<minutes>`` form the
    minutes take the sign written on the hours, so ``-5h30`` is five and a
    half hours west of UTC.  A written sign counts even when the hours are
    zero: ``-0h30`` is -1800 s, not +1800 s as a numeric ``hours < 0`` test
    would give, since int("-0") loses the sign.
    """
    value = token.strip()
    if value.lower() == "x":
        return None

    try:
        if "_" in value:
            raise ValueError(value)
        if "h" in value.lower():
            hours_str, minutes_str = value.lower().split("h")
            hours = int(hours_str)
            minutes = int(minutes_str)
            if minutes < 0:
                raise ValueError(minutes_str)
            seconds = hours * 3600
            if hours_str.strip().startswith("-"):
                seconds -= minutes * 60
            else:
                seconds += minutes * 60
        else:
            seconds = int(value) * 3600
        return _dt.timezone(_dt.timedelta(seconds=seconds))
    except ValueError:
        raise InvalidValueError(token, "time offset") from None


# -- Timebase ------------------------------------------------------------------

@dataclass(frozen=True)
class Timebase:
    """Converts sample numbers and stored timestamps to seconds.

    Parameters
    ----------
    sampling_rates : sequence of SamplingRate
        Ordered rate segments.  Empty means timestamp-critical.
    base_unit : float
        Seconds per stored timestamp tick (1e-6 or 1e-9).
    multiplier : float
        Timestamp multiplication factor from the configuration.
    """

    sampling_rates: Tuple[SamplingRate, ...]
    base_unit: float = TimePrecision.MICROSECONDS.base_unit
    multiplier: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "sampling_rates", tuple(self.sampling_rates))

    @property
    def timestamp_critical(self) -> bool:
        return len(self.sampling_rates) == 0

    def rate_for(self, sample_number: int) -> float:
        """Rate (Hz) of the first segment ending at or after *sample_number*.

        Falls back to 1.0 Hz when no segment covers the sample.
        """
        for rate in self.sampling_rates:
            if sample_number <= rate.end_sample_number:
                return rate.rate_hz
        return _FALLBACK_RATE_HZ

    def real_time(self, sample_number: int,
                  stored: Optional[int] = None) -> float:
        """Seconds since the start of recording for one sample.

        Raises
        ------
        MissingTimestampError
            If no rates are declared and *stored* is None.
        """
        if self.sampling_rates and (not self.timestamp_critical or stored is None):
            return (sample_number - 1) / self.rate_for(sample_number)
        if self.timestamp_critical and stored is not None:
            return stored * self.base_unit * self.multiplier
        raise MissingTimestampError(sample_number)

    def rates_for(self, sample_numbers: Sequence[int]) -> np.ndarray:
        """Vectorised :meth:`rate_for`."""
        ns = np.asarray(sample_numbers)
        rates = np.full(ns.shape, _FALLBACK_RATE_HZ, dtype=np.float64)
        # Assign in reverse so the first matching segment wins
        for rate in reversed(self.sampling_rates):
            rates[ns <= rate.end_sample_number] = rate.rate_hz
        return rates

    def real_times(self, sample_numbers: Sequence[int],
                   stored=None) -> np.ndarray:
        """Vectorised :meth:`real_time`.

        Parameters
        ----------
        sample_numbers : array-like of int
        stored : numpy.ma.MaskedArray, optional
            Stored timestamps with absent entries masked.

        Returns
        -------
        np.ndarray
            float64 seconds, one per sample.
        """
        ns = np.asarray(sample_numbers, dtype=np.int64)
        if not self.timestamp_critical:
            return (ns - 1) / self.rates_for(ns)

        if stored is None:
            if len(ns) == 0:
                return np.zeros(0, dtype=np.float64)
            raise MissingTimestampError(int(ns[0]))
        stored = np.ma.asarray(stored)
        missing = np.ma.getmaskarray(stored)
        if np.any(missing):
            raise MissingTimestampError(int(ns[np.argmax(missing)]))
        raw = np.ma.getdata(stored).astype(np.float64)
        return raw * self.base_unit * self.multiplier

"""Sample data (``.dat``) decoder for ASCII and binary encodings.

Binary files are a sequence of fixed-width little-endian records::

    uint32 sample number
    uint32 timestamp            (0xFFFFFFFF when absent)
    N x analog sample           (int16, int32 or float32)
    ceil(M / 16) x uint16       status words, LSB first

ASCII files hold one comma-separated row per sample with the same columns.
Analog values are scaled ``raw * multiplier + offset_adder``.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from ..errors import InvalidValueError, TruncatedDataError, error_context
from ..record import AnalogConfig, DataFormat
from .cfg import ConfigResult
from .tokens import TokenCursor

logger = logging.getLogger(__name__)

MISSING_TIMESTAMP = 0xFFFFFFFF
STATUS_WORD_BITS = 16

_UINT32_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class DecodedData:
    """Samples read from a data file, before time reconstruction.

    ``stored_timestamps`` is a masked array; absent timestamps are masked.
    ``analog`` is float64 with shape ``(n_samples, n_analog)`` and already
    scaled.  ``status`` is uint8 with shape ``(n_samples, n_status)``.
    """

    sample_numbers: np.ndarray
    stored_timestamps: np.ma.MaskedArray
    analog: np.ndarray
    status: np.ndarray

    @property
    def n_samples(self) -> int:
        return len(self.sample_numbers)


# -- Scaling -------------------------------------------------------------------

def scale_analog(raw: np.ndarray, configs: Sequence[AnalogConfig]) -> np.ndarray:
    """Apply ``raw * multiplier + offset_adder`` column-wise."""
    multipliers = np.array([c.multiplier for c in configs], dtype=np.float64)
    offsets = np.array([c.offset_adder for c in configs], dtype=np.float64)
    return raw.astype(np.float64) * multipliers + offsets


# -- ASCII ---------------------------------------------------------------------

def _uint32(token: str) -> int:
    if "_" in token:
        raise ValueError(token)
    value = int(token)
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(token)
    return value


def _status_bit(token: str) -> int:
    if token not in ("0", "1"):
        raise ValueError(token)
    return int(token)


def decode_ascii(text: str, config: ConfigResult) -> DecodedData:
    """Decode ASCII sample rows.

    Every non-blank row must have exactly ``2 + n_analog + n_status``
    fields.  An empty timestamp field means the timestamp is absent.
    """
    n_analog, n_status = config.num_analog, config.num_status
    n_fields = 2 + n_analog + n_status
    rows = [line for line in text.splitlines() if line.strip()]
    n = len(rows)

    sample_numbers = np.empty(n, dtype=np.uint32)
    stored = np.zeros(n, dtype=np.uint32)
    absent = np.zeros(n, dtype=bool)
    raw = np.empty((n, n_analog), dtype=np.float64)
    status = np.empty((n, n_status), dtype=np.uint8)

    for k, line in enumerate(rows):
        with error_context(f"data row {k + 1}"):
            cursor = TokenCursor.from_line(line, n_fields, n_fields)
            sample_numbers[k] = cursor.read(_uint32, "sample number", "uint32")
            ts_token = cursor.read_str("timestamp")
            if ts_token:
                try:
                    stored[k] = _uint32(ts_token)
                except ValueError:
                    raise InvalidValueError(
                        ts_token, "uint32", field="timestamp"
                    ) from None
            else:
                absent[k] = True
            for i in range(n_analog):
                raw[k, i] = cursor.read(float, f"analog {i + 1}")
            for j in range(n_status):
                status[k, j] = cursor.read(_status_bit, f"status {j + 1}", "0 or 1")

    expected = config.total_samples
    if expected is not None and n != expected:
        logger.warning("Data has %d rows, configuration declares %d samples",
                       n, expected)

    return DecodedData(
        sample_numbers=sample_numbers,
        stored_timestamps=np.ma.MaskedArray(stored, mask=absent),
        analog=scale_analog(raw, config.analog_configs),
        status=status,
    )


# -- Binary --------------------------------------------------------------------

def record_dtype(data_format: DataFormat, n_analog: int,
                 n_status: int) -> np.dtype:
    """Structured dtype of one binary sample record."""
    fields = [("sample", "<u4"), ("timestamp", "<u4")]
    if n_analog:
        fields.append(("analog", data_format.sample_dtype, (n_analog,)))
    n_words = -(-n_status // STATUS_WORD_BITS)
    if n_words:
        fields.append(("status", "<u2", (n_words,)))
    return np.dtype(fields)


def unpack_status_words(words: np.ndarray, n_status: int) -> np.ndarray:
    """Unpack 16-bit status words LSB first.

    Bit ``i`` of word ``g`` becomes channel ``16 * g + i``; padding bits past
    *n_status* are dropped.

    Parameters
    ----------
    words : np.ndarray
        Shape ``(n_samples, n_words)`` unsigned 16-bit words.
    n_status : int
        Number of declared status channels.

    Returns
    -------
    np.ndarray
        uint8 array of shape ``(n_samples, n_status)``.
    """
    words = np.ascontiguousarray(words, dtype="<u2")
    n = words.shape[0]
    as_bytes = words.view(np.uint8).reshape(n, 2 * words.shape[1])
    bits = np.unpackbits(as_bytes, axis=1, bitorder="little")
    return bits[:, :n_status]


def decode_binary(data: bytes, config: ConfigResult) -> DecodedData:
    """Decode little-endian binary sample records.

    Exactly ``config.total_samples`` records are read; when the
    configuration declares no sampling rates, every whole record in *data*
    is read.

    Raises
    ------
    TruncatedDataError
        If *data* is shorter than the records it must hold.
    """
    n_analog, n_status = config.num_analog, config.num_status
    dtype = record_dtype(config.data_format, n_analog, n_status)
    size = len(data)

    count = config.total_samples
    if count is None:
        count, partial = divmod(size, dtype.itemsize)
        if partial:
            raise TruncatedDataError((count + 1) * dtype.itemsize, size)
    else:
        expected = count * dtype.itemsize
        if size < expected:
            raise TruncatedDataError(expected, size)
        if size > expected:
            logger.warning("Ignoring %d bytes after %d binary records",
                           size - expected, count)

    if count:
        records = np.frombuffer(data, dtype=dtype, count=count)
    else:
        records = np.zeros(0, dtype=dtype)
    timestamps = records["timestamp"].astype(np.uint32)

    if n_analog:
        raw = records["analog"].reshape(count, n_analog)
    else:
        raw = np.empty((count, 0), dtype=np.float64)
    if n_status:
        words = records["status"].reshape(count, dtype["status"].shape[0])
        status = unpack_status_words(words, n_status)
    else:
        status = np.empty((count, 0), dtype=np.uint8)

    return DecodedData(
        sample_numbers=records["sample"].astype(np.uint32),
        stored_timestamps=np.ma.MaskedArray(
            timestamps, mask=timestamps == MISSING_TIMESTAMP
        ),
        analog=scale_analog(raw, config.analog_configs),
        status=status,
    )


def decode_dat(data: Union[str, bytes], config: ConfigResult) -> DecodedData:
    """Decode a data file in the encoding named by *config*."""
    if config.data_format is DataFormat.ASCII:
        if isinstance(data, (bytes, bytearray)):
            data = data.decode("utf-8-sig")
        return decode_ascii(data, config)
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(
            f"{config.data_format.value} data must be bytes, "
            f"got {type(data).__name__}"
        )
    return decode_binary(bytes(data), config)

"""ComtradeParser: facade over the container, configuration and data decoders.

Create a parser with one of the ``from_*`` classmethods, then call
``parse()`` to produce an immutable :class:`~comtradekit.record.Record`.
:func:`load_comtrade` does the same starting from a path on disk.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from .errors import DecodeError, UnsupportedFeatureError, error_context
from .record import (
    AnalogChannel,
    Record,
    RecordDraft,
    StatusChannel,
)
from .timebase import Timebase

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "utf-8"


def _read_source(source, label: str, binary: bool, encoding: str):
    """Return the contents of *source* as ``bytes`` or ``str``.

    *source* may be a text or binary stream, ``bytes`` or ``str``.
    """
    if hasattr(source, "read"):
        source = source.read()

    if isinstance(source, (bytes, bytearray)):
        if binary:
            return bytes(source)
        if encoding.lower().replace("_", "-") in ("utf-8", "utf8"):
            encoding = "utf-8-sig"
        try:
            return bytes(source).decode(encoding)
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"cannot decode {label} as {encoding}: {e.reason}"
            ) from e

    if isinstance(source, str):
        if binary:
            raise TypeError(f"binary {label} data must be bytes, not str")
        return source.lstrip("\ufeff")

    raise TypeError(
        f"{label} must be a stream, bytes or str, got {type(source).__name__}"
    )


class ComtradeParser:
    """One-shot decoder for a single COMTRADE recording.

    Use one of the ``from_*`` classmethods to create an instance, then call
    ``parse()`` exactly once.
    """

    def __init__(self, source_type: str, config: dict):
        """Private constructor, use classmethods instead."""
        self._source_type = source_type
        self._config = config
        self._record: Optional[Record] = None
        self._parsed = False

    # -- Factory classmethods --------------------------------------------------

    @classmethod
    def from_streams(cls, cfg, dat, hdr=None, inf=None,
                     encoding=DEFAULT_ENCODING):
        """Create a parser for separate configuration and data inputs.

        Parameters
        ----------
        cfg, dat : stream, bytes or str
            Configuration and data file contents.  Binary data must be
            given as bytes or a binary stream.
        hdr, inf : stream, bytes or str, optional
            Header and information files, passed through as text.
        encoding : str
            Text encoding of the configuration, ASCII data and annotations.
        """
        config = {
            "cfg": cfg,
            "dat": dat,
            "hdr": hdr,
            "inf": inf,
            "encoding": encoding,
        }
        return cls("streams", config)

    @classmethod
    def from_cff(cls, cff, encoding=DEFAULT_ENCODING):
        """Create a parser for a combined ``.cff`` container."""
        config = {
            "cff": cff,
            "encoding": encoding,
        }
        return cls("cff", config)

    # -- Core ------------------------------------------------------------------

    def parse(self) -> Record:
        """Decode the inputs and return the record.

        Raises
        ------
        ComtradeError
            Describing the first problem found.  No partial record is
            produced.
        RuntimeError
            If called more than once.
        """
        if self._parsed:
            raise RuntimeError("parse() can only be called once per parser")
        self._parsed = True

        dispatch = {
            "streams": self._parse_streams,
            "cff": self._parse_cff,
        }
        record = dispatch[self._source_type]()

        # Inputs are not needed once the record exists
        self._config = {"encoding": self._config["encoding"]}
        self._record = record
        logger.info(
            "Decoded %s/%s: %d analog, %d status channels, %d samples",
            record.station_name, record.recording_device_id,
            len(record.analog_channels), len(record.status_channels),
            record.total_samples,
        )
        return record

    # -- Properties ------------------------------------------------------------

    @property
    def source_type(self) -> str:
        """The input arrangement: 'streams' or 'cff'."""
        return self._source_type

    @property
    def record(self) -> Optional[Record]:
        """The decoded Record, or None if parse() hasn't succeeded."""
        return self._record

    # -- Internal dispatch methods ---------------------------------------------

    def _parse_streams(self) -> Record:
        from .decoders.cfg import parse_cfg

        cfg = self._config
        encoding = cfg["encoding"]

        config = parse_cfg(_read_source(cfg["cfg"], "cfg", False, encoding))
        dat = _read_source(
            cfg["dat"], "dat", config.data_format.is_binary, encoding
        )
        hdr, inf = (
            None if cfg[key] is None
            else _read_source(cfg[key], key, False, encoding)
            for key in ("hdr", "inf")
        )
        return _assemble(config, dat, hdr, inf)

    def _parse_cff(self) -> Record:
        from .decoders.cff import demultiplex
        from .decoders.cfg import parse_cfg

        text = _read_source(
            self._config["cff"], "cff", False, self._config["encoding"]
        )
        sections = demultiplex(text)
        config = parse_cfg(sections.cfg)

        if config.data_format.is_binary:
            raise UnsupportedFeatureError(
                f"configuration declares {config.data_format.value} data but "
                f"a combined file can only carry ASCII data",
                field="container",
            )
        if (sections.data_format is not None
                and sections.data_format is not config.data_format):
            logger.warning(
                "Container declares %s data, configuration declares %s",
                sections.data_format.value, config.data_format.value,
            )
        return _assemble(config, sections.dat, sections.hdr, sections.inf)


def _assemble(config, dat: Union[str, bytes], hdr: Optional[str],
              inf: Optional[str]) -> Record:
    """Decode sample data against *config* and build the record."""
    from .decoders.dat import decode_dat

    with error_context("dat"):
        decoded = decode_dat(dat, config)
        timebase = Timebase(
            config.sampling_rates,
            base_unit=config.time_precision.base_unit,
            multiplier=config.timestamp_multiplication_factor,
        )
        timestamps = timebase.real_times(
            decoded.sample_numbers, decoded.stored_timestamps
        )
    logger.debug("Decoded %d samples (%s)", decoded.n_samples,
                 config.data_format.value)

    draft = RecordDraft()
    draft.station_name = config.station_name
    draft.recording_device_id = config.recording_device_id
    draft.revision = config.revision
    draft.sample_numbers = decoded.sample_numbers
    draft.timestamps = timestamps
    draft.analog_channels = [
        AnalogChannel(c, decoded.analog[:, i])
        for i, c in enumerate(config.analog_configs)
    ]
    draft.status_channels = [
        StatusChannel(c, decoded.status[:, i])
        for i, c in enumerate(config.status_configs)
    ]
    draft.line_frequency = config.line_frequency
    draft.sampling_rates = list(config.sampling_rates)
    draft.start_time = config.start_time
    draft.trigger_time = config.trigger_time
    draft.data_format = config.data_format
    draft.time_precision = config.time_precision
    draft.timestamp_multiplication_factor = config.timestamp_multiplication_factor
    draft.time_offset = config.time_offset
    draft.local_offset = config.local_offset
    draft.time_quality = config.time_quality
    draft.leap_second_status = config.leap_second_status
    draft.header_text = hdr
    draft.info_text = inf
    return draft.finalize()


# -- Path entry point ----------------------------------------------------------

def _sibling(path: Path, suffix: str) -> Optional[Path]:
    """Return the existing file next to *path* with *suffix* in either case."""
    for candidate in (path.with_suffix(suffix.lower()),
                      path.with_suffix(suffix.upper())):
        if candidate.exists():
            return candidate
    return None


def resolve_paths(path: Union[str, Path]
                  ) -> Tuple[Path, Path, Optional[Path], Optional[Path]]:
    """Locate the ``.cfg``, ``.dat``, ``.hdr`` and ``.inf`` files of a
    recording given the path of any one of them.

    Raises
    ------
    FileNotFoundError
        If the configuration or data file does not exist.
    """
    path = Path(path)
    cfg_path = _sibling(path, ".cfg")
    if cfg_path is None:
        raise FileNotFoundError(
            f"No .cfg file found at {path.with_suffix('.cfg')}"
        )
    dat_path = _sibling(path, ".dat")
    if dat_path is None:
        raise FileNotFoundError(
            f"No .dat file found at {path.with_suffix('.dat')}"
        )
    return cfg_path, dat_path, _sibling(path, ".hdr"), _sibling(path, ".inf")


def load_comtrade(path: Union[str, Path],
                  encoding: str = DEFAULT_ENCODING) -> Record:
    """Decode the recording at *path*.

    Parameters
    ----------
    path : str or Path
        A ``.cff`` container, or any of the ``.cfg``/``.dat`` pair (the
        other files are found next to it with the same stem).
    encoding : str
        Text encoding of the configuration and text sections.

    Returns
    -------
    Record
    """
    path = Path(path)
    if path.suffix.lower() == ".cff":
        if not path.exists():
            raise FileNotFoundError(f"No .cff file found at {path}")
        logger.info("Loading combined file %s", path)
        return ComtradeParser.from_cff(path.read_bytes(), encoding).parse()

    cfg_path, dat_path, hdr_path, inf_path = resolve_paths(path)
    logger.info("Loading %s", cfg_path)
    parser = ComtradeParser.from_streams(
        cfg_path.read_bytes(),
        dat_path.read_bytes(),
        hdr=hdr_path.read_bytes() if hdr_path else None,
        inf=inf_path.read_bytes() if inf_path else None,
        encoding=encoding,
    )
    return parser.parse()

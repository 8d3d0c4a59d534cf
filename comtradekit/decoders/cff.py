"""Combined-file (``.cff``) container demultiplexer.

A container concatenates the configuration, data, header and information
files, each introduced by a header line::

    --- file type: CFG ---
    --- file type: DAT ASCII: 1234 ---
    --- file type: HDR ---
    --- file type: INF ---
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import DecodeError, InvalidValueError, UnsupportedFeatureError
from ..record import DataFormat

logger = logging.getLogger(__name__)

SECTION_TYPES = ("cfg", "dat", "hdr", "inf")

_HEADER_FENCE = "---"
_HEADER_KEY = "file type"


@dataclass(frozen=True)
class SectionHeader:
    """One parsed ``--- file type: ... ---`` line."""

    file_type: str
    data_format: Optional[DataFormat] = None
    data_size: Optional[int] = None


@dataclass
class ContainerSections:
    """Text of each section found in a container.

    ``data_size`` is the byte count declared on the DAT header.  It is
    recorded but not used to bound the data section.
    """

    cfg: str = ""
    dat: str = ""
    hdr: Optional[str] = None
    inf: Optional[str] = None
    data_format: Optional[DataFormat] = None
    data_size: Optional[int] = None


def parse_header_line(line: str) -> Optional[SectionHeader]:
    """Recognise a section header line.

    Returns None for lines without the ``--- file type: ... ---`` shape.

    Raises
    ------
    InvalidValueError
        For a header naming an unknown file type or data format.
    """
    stripped = line.strip()
    if (len(stripped) < 2 * len(_HEADER_FENCE)
            or not stripped.startswith(_HEADER_FENCE)
            or not stripped.endswith(_HEADER_FENCE)):
        return None

    inner = stripped[len(_HEADER_FENCE):-len(_HEADER_FENCE)].strip().lower()
    key, sep, rest = inner.partition(":")
    if not sep or " ".join(key.split()) != _HEADER_KEY:
        return None

    type_part, sep, size_part = rest.partition(":")
    words = type_part.split()
    if not 1 <= len(words) <= 2:
        return None

    file_type = words[0]
    if file_type not in SECTION_TYPES:
        raise InvalidValueError(file_type, "cfg, dat, hdr or inf",
                                field="container header")

    data_format = None
    if len(words) == 2:
        try:
            data_format = DataFormat.from_token(words[1])
        except ValueError:
            raise InvalidValueError(words[1], "data format",
                                    field="container header") from None

    data_size = None
    if sep:
        size_token = size_part.strip()
        if not size_token.isdigit():
            raise InvalidValueError(size_token, "int",
                                    field="container header: size")
        data_size = int(size_token)

    return SectionHeader(file_type, data_format, data_size)


def demultiplex(text: str) -> ContainerSections:
    """Split container text into its sections.

    Parameters
    ----------
    text : str
        Decoded container contents.

    Returns
    -------
    ContainerSections

    Raises
    ------
    DecodeError
        If content appears before the first header.
    UnsupportedFeatureError
        If the data section is declared as binary.
    """
    buffers: Dict[str, List[str]] = {}
    sections = ContainerSections()
    current = None

    for number, line in enumerate(text.splitlines(), start=1):
        header = parse_header_line(line)
        if header is not None:
            current = header.file_type
            if current == "dat":
                if header.data_format is not None and header.data_format.is_binary:
                    raise UnsupportedFeatureError(
                        f"binary data ({header.data_format.value}) inside a "
                        f"combined file is not supported"
                    )
                sections.data_format = header.data_format
                sections.data_size = header.data_size
                if header.data_size is not None:
                    logger.debug("Container declares %d data bytes",
                                 header.data_size)
            buffers.setdefault(current, [])
            continue

        if current is None:
            if line.strip():
                raise DecodeError(
                    f"line {number}: content before header",
                    field="container",
                )
            continue
        buffers[current].append(line.strip())

    sections.cfg = "\n".join(buffers.get("cfg", []))
    sections.dat = "\n".join(buffers.get("dat", []))
    if "hdr" in buffers:
        sections.hdr = "\n".join(buffers["hdr"])
    if "inf" in buffers:
        sections.inf = "\n".join(buffers["inf"])
    logger.debug("Container sections: %s", ", ".join(sorted(buffers)))
    return sections

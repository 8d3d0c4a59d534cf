"""Token cursor used by the configuration grammar.

All numeric and enum coercion of configuration tokens happens here, so every
failure carries the raw value, the expected type and a field label.
"""

from typing import Callable, Iterable, List, Optional, TypeVar

from ..errors import (
    InvalidValueError,
    MissingLineElementsError,
    UnexpectedEndOfInputError,
    UnexpectedLineElementsError,
)

T = TypeVar("T")

_TYPE_NAMES = {int: "int", float: "float", str: "str"}


def split_fields(line: str) -> List[str]:
    """Split a comma-separated line into whitespace-trimmed tokens."""
    return [token.strip() for token in line.split(",")]


class TokenCursor:
    """Sequential reader over the trimmed tokens of one line."""

    def __init__(self, tokens: List[str]):
        self._tokens = tokens
        self._pos = 0

    @classmethod
    def from_line(cls, line: str, required: int,
                  maximum: Optional[int] = None) -> "TokenCursor":
        """Split *line* and check its field count.

        Parameters
        ----------
        line : str
            Raw configuration line.
        required : int
            Minimum number of fields.
        maximum : int, optional
            Maximum number of fields; ``None`` allows any surplus.
        """
        tokens = split_fields(line)
        if len(tokens) < required:
            raise MissingLineElementsError(required, len(tokens))
        if maximum is not None and len(tokens) > maximum:
            raise UnexpectedLineElementsError(maximum, len(tokens))
        return cls(tokens)

    def __len__(self):
        return len(self._tokens)

    @property
    def remaining(self) -> int:
        return len(self._tokens) - self._pos

    def _next(self, field: str) -> str:
        if self._pos >= len(self._tokens):
            raise MissingLineElementsError(
                self._pos + 1, len(self._tokens), field=field
            )
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def read_str(self, field: str) -> str:
        return self._next(field)

    def read_optional(self) -> Optional[str]:
        """Return the next token, or None when the line is exhausted."""
        if self._pos >= len(self._tokens):
            return None
        return self._next("")

    def read(self, parse: Callable[[str], T], field: str,
             type_name: Optional[str] = None) -> T:
        """Read the next token converted with *parse*.

        *parse* may be a type such as ``int`` or ``float`` or any callable
        raising ``ValueError`` (or ``KeyError``) on bad input.
        """
        token = self._next(field)
        return _convert(token, parse, field, type_name)

    def read_with_suffix(self, parse: Callable[[str], T], field: str,
                         type_name: Optional[str] = None) -> T:
        """Read the next token with its final character stripped.

        Used for the ``12A`` / ``4D`` style channel counts.
        """
        token = self._next(field)
        return _convert(token[:-1], parse, field, type_name, raw=token)


def _convert(token, parse, field, type_name=None, raw=None):
    if type_name is None:
        type_name = _TYPE_NAMES.get(parse, getattr(parse, "__name__", "value"))
    try:
        # int() and float() accept digit separators, COMTRADE numbers do not
        if "_" in token:
            raise ValueError(token)
        return parse(token)
    except (ValueError, KeyError):
        raise InvalidValueError(
            token if raw is None else raw, type_name, field=field
        ) from None


class LineReader:
    """Forward-only reader over configuration lines."""

    def __init__(self, lines: Iterable[str]):
        self._lines = [line.rstrip("\r\n") for line in lines]
        self._pos = 0

    @classmethod
    def from_text(cls, text: str) -> "LineReader":
        return cls(text.splitlines())

    @property
    def line_number(self) -> int:
        """1-based number of the most recently consumed line."""
        return self._pos

    def next_line(self) -> str:
        if self._pos >= len(self._lines):
            raise UnexpectedEndOfInputError()
        line = self._lines[self._pos]
        self._pos += 1
        return line

    def next_cursor(self, required: int,
                    maximum: Optional[int] = None) -> TokenCursor:
        return TokenCursor.from_line(self.next_line(), required, maximum)

    def remaining_lines(self) -> List[str]:
        return self._lines[self._pos:]

"""Explicit decoders from a response body to the types callers ask for."""

from __future__ import annotations

import codecs
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

DEFAULT_CHARSET = "utf-8"

# Plain ASCII forms only: no `_` digit groups, no non-ASCII digits.
_INTEGER_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
_REAL_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?", re.ASCII)


class ConversionError(ValueError):
    """A response body could not be converted to the requested type."""

    def __init__(self, target: Any, cause: BaseException | str) -> None:
        self.target = target
        self.cause = cause
        name = getattr(target, "__name__", repr(target))
        super().__init__(f"Cannot return the requested type {name}: {cause}")


def to_bytes(body: bytes | None, charset: str | None = None) -> bytes | None:
    return body


def to_text(body: bytes | None, charset: str | None = None) -> str:
    """Decode with the declared charset, UTF-8 when none was declared."""
    if body is None:
        return ""
    encoding = charset or DEFAULT_CHARSET
    try:
        codecs.lookup(encoding)
    except LookupError as e:
        raise ConversionError(str, e) from e
    try:
        return body.decode(encoding)
    except UnicodeDecodeError as e:
        raise ConversionError(str, e) from e


def to_int(body: bytes | None, charset: str | None = None) -> int:
    text = to_text(body, charset).strip()
    if not _INTEGER_RE.fullmatch(text):
        raise ConversionError(int, f"invalid integer literal {text!r}")
    try:
        return int(text)
    except ValueError as e:
        raise ConversionError(int, e) from e


def to_float(body: bytes | None, charset: str | None = None) -> float:
    text = to_text(body, charset).strip()
    if not _REAL_RE.fullmatch(text):
        raise ConversionError(float, f"invalid number literal {text!r}")
    try:
        return float(text)
    except ValueError as e:
        raise ConversionError(float, e) from e


def to_decimal(body: bytes | None, charset: str | None = None) -> Decimal:
    text = to_text(body, charset).strip()
    if not _REAL_RE.fullmatch(text):
        raise ConversionError(Decimal, f"invalid decimal literal {text!r}")
    try:
        return Decimal(text)
    except InvalidOperation as e:
        raise ConversionError(Decimal, f"invalid decimal literal {text!r}") from e


def to_bool(body: bytes | None, charset: str | None = None) -> bool:
    """Accept `true`/`false` in any case; anything else is an error."""
    text = to_text(body, charset).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    raise ConversionError(bool, f"invalid boolean literal {text!r}")


DECODERS: dict[type, Callable[[bytes | None, str | None], Any]] = {
    bytes: to_bytes,
    str: to_text,
    int: to_int,
    float: to_float,
    Decimal: to_decimal,
    bool: to_bool,
}


def convert(body: bytes | None, charset: str | None, target: type) -> Any:
    """Convert a body using the decoder registered for `target`."""
    try:
        decoder = DECODERS[target]
    except (KeyError, TypeError):
        raise ConversionError(target, "no decoder for this type") from None
    return decoder(body, charset)

"""Errors raised by the MIDI <-> token codec."""

from __future__ import annotations


class TokenCodecError(ValueError):
    """Base class for token stream errors."""


class InvalidPitchName(TokenCodecError):
    def __init__(self, name: str, reason: str = "unknown pitch class") -> None:
        self.name = name
        super().__init__(f"Invalid pitch name {name!r}: {reason}")


class MalformedNumeric(TokenCodecError):
    def __init__(self, field: str, raw: str | None, *, line_no: int | None = None) -> None:
        self.field = field
        self.raw = raw
        self.line_no = line_no
        where = f" (line {line_no})" if line_no is not None else ""
        if raw is None:
            message = f"Missing {field} value{where}"
        else:
            message = f"Malformed {field} value {raw!r}{where}"
        super().__init__(message)


class EmptyInput(TokenCodecError):
    def __init__(self) -> None:
        super().__init__("Token stream is empty; nothing to decode.")

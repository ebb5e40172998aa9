"""
Pitch name <-> MIDI note number mapping.

Names use sharps only and scientific octave numbering, so middle C (60) is
`C4` and the lowest MIDI note (0) is `C-1`.
"""

from __future__ import annotations

import re

from codec_errors import InvalidPitchName

PITCH_CLASSES: tuple[str, ...] = (
    "C",
    "C#",
    "D",
    "D#",
    "E",
    "F",
    "F#",
    "G",
    "G#",
    "A",
    "A#",
    "B",
)

_PITCH_CLASS_TO_INDEX = {name: idx for idx, name in enumerate(PITCH_CLASSES)}
_NAME_RE = re.compile(r"^(?P<letter>[^\d-]+)(?P<octave>-?\d+)$")


def number_to_name(note_number: int) -> str:
    """Convert a MIDI note number (0-127) to its pitch name, e.g. 61 -> `C#4`."""
    n = int(note_number)
    if not 0 <= n <= 127:
        raise ValueError(f"MIDI note number out of range 0..127: {note_number}")
    octave = n // 12 - 1
    return f"{PITCH_CLASSES[n % 12]}{octave}"


def name_to_number(name: str) -> int:
    """
    Convert a pitch name to its MIDI note number.

    Accepts the musical sharp glyph and any letter case (`c♯4`, `C#4`).
    Raises InvalidPitchName for names outside the 12 sharp pitch classes or
    outside the MIDI range.
    """
    text = str(name).strip().replace("♯", "#").upper()
    match = _NAME_RE.match(text)
    if match is None:
        raise InvalidPitchName(name, "expected <pitch class><octave>")

    letter = match.group("letter")
    if letter not in _PITCH_CLASS_TO_INDEX:
        raise InvalidPitchName(name)

    number = _PITCH_CLASS_TO_INDEX[letter] + (int(match.group("octave")) + 1) * 12
    if not 0 <= number <= 127:
        raise InvalidPitchName(name, "outside MIDI range 0..127")
    return number

#!/usr/bin/env python3
"""
Encode a MIDI file as a text token stream.

Stream layout (one command per line):
    TEMPO 120
    TIMEBASE 480
    TIME_SHIFT 240                 # gap since the previous note ended, omitted when 0
    NOTE_ON C4 VELOCITY 100
    NOTE_START 0.25                # exact start in seconds
    NOTE_END 0.75                  # exact end in seconds
    TIME_SHIFT 480                 # quantized duration, always written
    NOTE_OFF C4

Example:
    python token_encoder.py song.mid --timebase 480 --out song.txt
"""

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import Iterable

from codec_config import DEFAULT_CONFIG, LOG_FORMAT
from midi_parser import Note, load_notes

logger = logging.getLogger(__name__)


def format_seconds(value: float) -> str:
    """
    Shortest round-trip text for a float.

    Plain decimal notation is used for exponents -6..20 (`0.000001`,
    `10000000000000000`); outside that range the exponent is written unpadded
    with an explicit sign (`1.5e-7`, `1e+21`). Integral values drop the `.0`.
    """
    text = repr(float(value))
    if not math.isfinite(float(value)):
        return text

    sign = "-" if text.startswith("-") else ""
    mantissa, _, exp_text = text.lstrip("-").partition("e")
    if not exp_text:
        return sign + (mantissa[:-2] if mantissa.endswith(".0") else mantissa)

    exponent = int(exp_text)
    if mantissa.endswith(".0"):
        mantissa = mantissa[:-2]
    if not -6 <= exponent <= 20:
        return f"{sign}{mantissa}e{'+' if exponent > 0 else '-'}{abs(exponent)}"

    digits = mantissa.replace(".", "")
    point = exponent + 1  # digits before the decimal point
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return sign + digits + "0" * (point - len(digits))
    return f"{sign}{digits[:point]}.{digits[point:]}"


def seconds_to_tick(seconds: float, seconds_per_tick: float) -> int:
    return int(round(float(seconds) / seconds_per_tick))


def tokenize_notes(notes: Iterable[Note], *, tempo: int, timebase: int) -> list[str]:
    """
    Turn a start-sorted note list into token lines.

    Every note is written as NOTE_ON / NOTE_START / NOTE_END / TIME_SHIFT /
    NOTE_OFF. The TIME_SHIFT before NOTE_ON is the tick gap since the previous
    note's end and is skipped when it is not positive, so overlapping notes
    never produce negative shifts.
    """
    if int(tempo) <= 0:
        raise ValueError("tempo must be >= 1")
    if int(timebase) <= 0:
        raise ValueError("timebase must be >= 1")

    tokens = [f"TEMPO {int(tempo)}", f"TIMEBASE {int(timebase)}"]
    seconds_per_tick = 60.0 / int(tempo) / int(timebase)

    last_tick = 0
    for note in notes:
        if note.end_sec < note.start_sec:
            raise ValueError(f"Note ends before it starts: {note!r}")

        start_tick = seconds_to_tick(note.start_sec, seconds_per_tick)
        end_tick = seconds_to_tick(note.end_sec, seconds_per_tick)

        delta = start_tick - last_tick
        if delta > 0:
            tokens.append(f"TIME_SHIFT {delta}")

        tokens.append(f"NOTE_ON {note.name} VELOCITY {int(note.velocity)}")
        tokens.append(f"NOTE_START {format_seconds(note.start_sec)}")
        tokens.append(f"NOTE_END {format_seconds(note.end_sec)}")
        tokens.append(f"TIME_SHIFT {end_tick - start_tick}")
        tokens.append(f"NOTE_OFF {note.name}")

        last_tick = end_tick

    return tokens


def midi_to_tokens(
    midi_path: str | Path,
    timebase: int = DEFAULT_CONFIG.default_timebase,
) -> str:
    """
    Read a MIDI file and return its token stream as newline-joined text.

    Raises FileNotFoundError before any tokens are produced when the input is missing.
    """
    resolved = Path(midi_path).resolve()
    if not resolved.is_file():
        raise FileNotFoundError(f"File not found: {resolved}")

    notes, tempo = load_notes(resolved)
    lines = tokenize_notes(notes, tempo=tempo, timebase=int(timebase))
    logger.info(
        "Encoded %s: %d notes, tempo=%d, timebase=%d, %d token lines",
        resolved,
        len(notes),
        tempo,
        int(timebase),
        len(lines),
    )
    return "\n".join(lines)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Convert a MIDI file to a text token stream.")
    parser.add_argument("midi_path", help="Path to input .mid file.")
    parser.add_argument(
        "--timebase",
        type=int,
        default=DEFAULT_CONFIG.default_timebase,
        help="Ticks per beat used to quantize TIME_SHIFT values.",
    )
    parser.add_argument("--out", type=str, default=None, help="Optional output .txt path.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT
    )

    try:
        tokens = midi_to_tokens(args.midi_path, timebase=int(args.timebase))
    except FileNotFoundError as exc:
        print(exc, file=sys.stderr)
        raise SystemExit(1)
    except ValueError as exc:
        print(f"Encoding failed: {exc}", file=sys.stderr)
        raise SystemExit(1)

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(tokens + "\n", encoding="utf-8")
        print(f"Saved tokens to: {out_path}")
    else:
        print(tokens)


if __name__ == "__main__":
    main()

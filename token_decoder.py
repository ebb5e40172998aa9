#!/usr/bin/env python3
"""
Decode a text token stream back into a MIDI file.

Two stages:
1. parse_tokens: lines -> typed note-on / note-off events at absolute ticks.
   TIME_SHIFT values accumulate over the whole stream and are never reset.
2. build_notes: events -> notes. A NOTE_ON annotated with NOTE_START and
   NOTE_END is placed from those seconds directly; otherwise it is paired with
   the next NOTE_OFF of the same pitch.

Example:
    python token_decoder.py song.txt --out song.mid
"""

from __future__ import annotations

import argparse
import logging
import math
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Literal

import mido

from codec_config import DEFAULT_CONFIG, LOG_FORMAT
from codec_errors import EmptyInput, InvalidPitchName, MalformedNumeric, TokenCodecError
from midi_writer import BuiltNote, build_midi_file, write_midi
from pitch_names import name_to_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Event:
    """Note-on / note-off at an absolute tick, with optional exact timing in seconds."""

    kind: Literal["on", "off"]
    note_number: int
    absolute_tick: int
    velocity: int | None = None
    start_sec: float | None = None
    end_sec: float | None = None

    @property
    def has_precise_timing(self) -> bool:
        return self.start_sec is not None and self.end_sec is not None


@dataclass(frozen=True, slots=True)
class ParsedTokens:
    bpm: int
    timebase: int
    events: list[Event]


def _field(parts: list[str], index: int, name: str, line_no: int) -> str:
    if index >= len(parts):
        raise MalformedNumeric(name, None, line_no=line_no)
    return parts[index]


def _pitch(parts: list[str], line_no: int) -> int:
    if len(parts) < 2:
        raise InvalidPitchName("", f"missing pitch name (line {line_no})")
    return name_to_number(parts[1])


def _parse_int(
    raw: str, name: str, line_no: int, *, lo: int | None = None, hi: int | None = None
) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise MalformedNumeric(name, raw, line_no=line_no) from None
    if (lo is not None and value < lo) or (hi is not None and value > hi):
        raise MalformedNumeric(name, raw, line_no=line_no)
    return value


def _parse_seconds(raw: str, name: str, line_no: int) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise MalformedNumeric(name, raw, line_no=line_no) from None
    if not math.isfinite(value) or value < 0:
        raise MalformedNumeric(name, raw, line_no=line_no)
    return value


def parse_tokens(
    lines: Iterable[str],
    *,
    default_bpm: int = DEFAULT_CONFIG.default_bpm,
    default_timebase: int = DEFAULT_CONFIG.default_timebase,
) -> ParsedTokens:
    """
    Parse token lines into header values and an ordered event list.

    Unknown commands are skipped. Numeric fields that do not parse (or fall
    outside their range) raise MalformedNumeric; bad pitch names raise
    InvalidPitchName.
    """
    bpm = int(default_bpm)
    timebase = int(default_timebase)
    time = 0
    events: list[Event] = []

    for line_no, raw in enumerate(lines, start=1):
        parts = raw.split()
        if not parts:
            continue
        command = parts[0]

        if command == "TEMPO":
            bpm = _parse_int(_field(parts, 1, "TEMPO", line_no), "TEMPO", line_no, lo=1)
            continue

        if command == "TIMEBASE":
            timebase = _parse_int(
                _field(parts, 1, "TIMEBASE", line_no), "TIMEBASE", line_no, lo=1
            )
            continue

        if command == "TIME_SHIFT":
            time += _parse_int(
                _field(parts, 1, "TIME_SHIFT", line_no), "TIME_SHIFT", line_no, lo=0
            )
            continue

        if command == "NOTE_ON":
            note_number = _pitch(parts, line_no)
            keyword = _field(parts, 2, "VELOCITY", line_no)
            if keyword != "VELOCITY":
                raise MalformedNumeric("VELOCITY", keyword, line_no=line_no)
            velocity = _parse_int(
                _field(parts, 3, "VELOCITY", line_no), "VELOCITY", line_no, lo=0, hi=127
            )
            events.append(
                Event(kind="on", note_number=note_number, absolute_tick=time, velocity=velocity)
            )
            continue

        if command in ("NOTE_START", "NOTE_END"):
            raw_seconds = _field(parts, 1, command, line_no)
            seconds = _parse_seconds(raw_seconds, command, line_no)
            if events and events[-1].kind == "on":
                if command == "NOTE_START":
                    event = replace(events[-1], start_sec=seconds)
                else:
                    event = replace(events[-1], end_sec=seconds)
                # A note may not end before it starts.
                if event.has_precise_timing and event.end_sec < event.start_sec:
                    raise MalformedNumeric(command, raw_seconds, line_no=line_no)
                events[-1] = event
            continue

        if command == "NOTE_OFF":
            note_number = _pitch(parts, line_no)
            events.append(Event(kind="off", note_number=note_number, absolute_tick=time))
            continue

        logger.debug("Skipping unknown token line %d: %r", line_no, raw)

    return ParsedTokens(bpm=bpm, timebase=timebase, events=events)


def build_notes(parsed: ParsedTokens) -> list[BuiltNote]:
    """
    Resolve parsed events into notes in absolute ticks.

    Precisely timed note-ons are emitted as soon as they are seen and are
    never paired with a later NOTE_OFF. Other note-ons wait for the next
    NOTE_OFF of the same pitch; a NOTE_OFF with nothing to close is dropped.
    """
    ticks_per_second = parsed.bpm * parsed.timebase / 60.0

    # note_number -> (start_tick, normalized velocity); scoped to this call.
    active_notes: dict[int, tuple[int, float]] = {}
    notes: list[BuiltNote] = []

    for event in parsed.events:
        if event.kind == "on":
            velocity = (event.velocity or 0) / 127.0
            if event.has_precise_timing:
                if not 0 <= event.start_sec <= event.end_sec < math.inf:
                    raise MalformedNumeric("NOTE_END", repr(event.end_sec))
                start_tick = int(round(event.start_sec * ticks_per_second))
                end_tick = int(round(event.end_sec * ticks_per_second))
                notes.append(
                    BuiltNote(
                        pitch=event.note_number,
                        start_tick=start_tick,
                        duration_ticks=end_tick - start_tick,
                        velocity=velocity,
                    )
                )
            else:
                active_notes[event.note_number] = (event.absolute_tick, velocity)
            continue

        active = active_notes.pop(event.note_number, None)
        if active is None:
            continue
        start_tick, velocity = active
        notes.append(
            BuiltNote(
                pitch=event.note_number,
                start_tick=start_tick,
                duration_ticks=event.absolute_tick - start_tick,
                velocity=velocity,
            )
        )

    return notes


def _split_stream(tokens: str) -> list[str]:
    if not tokens or not tokens.strip():
        raise EmptyInput()
    return tokens.split("\n")


def build_midi(parsed: ParsedTokens) -> mido.MidiFile:
    return build_midi_file(
        bpm=parsed.bpm, ticks_per_beat=parsed.timebase, notes=build_notes(parsed)
    )


def decode_tokens(tokens: str) -> mido.MidiFile:
    """Decode token text into an in-memory MIDI file."""
    return build_midi(parse_tokens(_split_stream(tokens)))


def tokens_to_midi(
    tokens: str,
    output_path: str | Path = DEFAULT_CONFIG.default_output,
) -> Path:
    """
    Decode token text and write the MIDI file to `output_path`.

    Raises EmptyInput (and writes nothing) when the stream is empty.
    """
    parsed = parse_tokens(_split_stream(tokens))
    notes = build_notes(parsed)
    out_path = write_midi(
        output_path, bpm=parsed.bpm, ticks_per_beat=parsed.timebase, notes=notes
    )
    logger.info(
        "Decoded %d events into %d notes (bpm=%d, timebase=%d) -> %s",
        len(parsed.events),
        len(notes),
        parsed.bpm,
        parsed.timebase,
        out_path,
    )
    return out_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Convert a text token stream to MIDI.")
    parser.add_argument("tokens_path", type=str, help="Path to the token .txt file.")
    parser.add_argument(
        "--out",
        type=str,
        default=DEFAULT_CONFIG.default_output,
        help="Output MIDI path.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT
    )

    tokens_path = Path(args.tokens_path)
    if not tokens_path.exists():
        print(f"File not found: {tokens_path.resolve()}", file=sys.stderr)
        raise SystemExit(1)

    try:
        out_path = tokens_to_midi(tokens_path.read_text(encoding="utf-8"), args.out)
    except EmptyInput:
        print(
            "Usage: token_decoder.py <tokens.txt> [--out output.mid] (token file is empty)",
            file=sys.stderr,
        )
        raise SystemExit(1)
    except TokenCodecError as exc:
        print(f"Decoding failed: {exc}", file=sys.stderr)
        raise SystemExit(1)

    print(f"Wrote MIDI: {out_path}")


if __name__ == "__main__":
    main()

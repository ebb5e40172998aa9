#!/usr/bin/env python3
"""
Round-trip check: MIDI -> tokens -> MIDI.

This is the "does my representation actually work?" sanity check, and
`generate_midi` is the one-call service used by callers that want the
rebuilt file directly.

The stream flattens tracks and keeps one tempo, so "correct" means every
note comes back with the same pitch and velocity and with start/end within
one tick of where it was:
  notes(midi_in) ~= notes(midi_out)
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from codec_config import DEFAULT_CONFIG, LOG_FORMAT, CodecConfig
from codec_errors import TokenCodecError
from midi_parser import Note, load_notes
from token_decoder import tokens_to_midi
from token_encoder import midi_to_tokens, seconds_to_tick

logger = logging.getLogger(__name__)


def generate_midi(
    midi_path: str | Path,
    timebase: int = DEFAULT_CONFIG.default_timebase,
    output_path: str | Path = DEFAULT_CONFIG.default_output,
) -> Path:
    """Encode `midi_path` to tokens, then decode them into `output_path`."""
    logger.info("Generating MIDI from %s", midi_path)
    tokens = midi_to_tokens(midi_path, timebase=int(timebase))
    return tokens_to_midi(tokens, output_path)


@dataclass(frozen=True, slots=True)
class NoteDrift:
    index: int
    name: str
    start_ticks: int
    end_ticks: int


def _note_key(note: Note, seconds_per_tick: float) -> tuple[int, str]:
    return (seconds_to_tick(note.start_sec, seconds_per_tick), note.name)


def compare_notes(
    expected: list[Note],
    actual: list[Note],
    *,
    tempo: int,
    timebase: int,
    tolerance_ticks: int = DEFAULT_CONFIG.drift_tolerance_ticks,
) -> tuple[list[NoteDrift], list[str]]:
    """
    Pair notes by (start tick, pitch) and report those drifting past the tolerance.

    Returns: (drifts, problems). `problems` lists count, pitch and velocity mismatches.
    """
    seconds_per_tick = 60.0 / int(tempo) / int(timebase)
    a = sorted(expected, key=lambda n: _note_key(n, seconds_per_tick))
    b = sorted(actual, key=lambda n: _note_key(n, seconds_per_tick))

    problems: list[str] = []
    if len(a) != len(b):
        problems.append(f"note count differs ({len(a)} vs {len(b)})")

    drifts: list[NoteDrift] = []
    for i, (x, y) in enumerate(zip(a, b)):
        if x.name != y.name:
            problems.append(f"note[{i}] pitch {x.name} became {y.name}")
            continue
        if x.velocity != y.velocity:
            problems.append(f"note[{i}] {x.name} velocity {x.velocity} became {y.velocity}")
        start_drift = abs(
            seconds_to_tick(x.start_sec, seconds_per_tick)
            - seconds_to_tick(y.start_sec, seconds_per_tick)
        )
        end_drift = abs(
            seconds_to_tick(x.end_sec, seconds_per_tick)
            - seconds_to_tick(y.end_sec, seconds_per_tick)
        )
        if start_drift > tolerance_ticks or end_drift > tolerance_ticks:
            drifts.append(
                NoteDrift(index=i, name=x.name, start_ticks=start_drift, end_ticks=end_drift)
            )
    return drifts, problems


def main() -> None:
    p = argparse.ArgumentParser(description="Round-trip test MIDI <-> tokens <-> MIDI.")
    p.add_argument("input_mid")
    p.add_argument(
        "--out",
        help="Optional output .mid path (default: input filename + _out).",
    )
    p.add_argument("--timebase", type=int, default=DEFAULT_CONFIG.default_timebase)
    p.add_argument(
        "--tolerance",
        type=int,
        default=DEFAULT_CONFIG.drift_tolerance_ticks,
        help="Allowed start/end drift per note, in ticks.",
    )
    p.add_argument("--print-tokens", type=int, default=20)
    p.add_argument("--verbose", action="store_true")
    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT
    )
    cfg = CodecConfig(
        default_timebase=int(args.timebase), drift_tolerance_ticks=int(args.tolerance)
    )

    input_path = Path(args.input_mid)
    if args.out:
        output_path = Path(args.out)
    else:
        suffix = input_path.suffix if input_path.suffix else ".mid"
        output_path = input_path.with_name(f"{input_path.stem}_out{suffix}")

    try:
        tokens = midi_to_tokens(input_path, timebase=cfg.default_timebase)
        tokens_to_midi(tokens, output_path)
    except (FileNotFoundError, TokenCodecError) as exc:
        print(exc, file=sys.stderr)
        raise SystemExit(1)

    notes_in, tempo = load_notes(input_path)
    notes_out, _ = load_notes(output_path)
    drifts, problems = compare_notes(
        notes_in,
        notes_out,
        tempo=tempo,
        timebase=cfg.default_timebase,
        tolerance_ticks=cfg.drift_tolerance_ticks,
    )

    if args.print_tokens > 0:
        print("Token preview:")
        print("\n".join(tokens.split("\n")[: int(args.print_tokens)]))
        print()

    for problem in problems:
        print(f"DIFF: {problem}")
    for drift in drifts[:30]:
        print(
            f"DRIFT: note[{drift.index}] {drift.name} "
            f"start {drift.start_ticks} ticks, end {drift.end_ticks} ticks"
        )
    if not drifts and not problems:
        print(f"OK ({len(notes_in)} notes within {cfg.drift_tolerance_ticks} tick(s))")
    print(f"\nWrote: {output_path}")

    if drifts or problems:
        raise SystemExit(2)


if __name__ == "__main__":
    main()

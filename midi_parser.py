#!/usr/bin/env python3
"""
MIDI reader for the token codec.

What this file does:
1. Loads a MIDI file with `mido`.
2. Builds the file's tempo map so ticks can be converted to seconds.
3. Pairs note-on / note-off messages per track into notes timed in seconds,
   with velocity normalized to [0, 1].
4. Flattens every track into one chronologically sorted note list for the
   encoder (`extract_notes`).
"""

from __future__ import annotations

import argparse
import bisect
import json
import sys
from collections import defaultdict
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import DefaultDict, Sequence

import mido

from pitch_names import number_to_name

DEFAULT_TEMPO_US_PER_BEAT = 500_000
DEFAULT_BPM = 120


@dataclass(frozen=True, slots=True)
class TempoPoint:
    """Tempo (beats per minute) taking effect at an absolute tick."""

    tick: int
    bpm: float


@dataclass(frozen=True, slots=True)
class SourceNote:
    """A note as stored in the MIDI file, timed in seconds."""

    pitch: int
    time: float
    duration: float
    velocity: float


@dataclass(frozen=True, slots=True)
class MidiContents:
    ticks_per_beat: int
    tempos: tuple[TempoPoint, ...]
    tracks: tuple[tuple[SourceNote, ...], ...]


@dataclass(frozen=True, slots=True)
class Note:
    """Encoder-side note: pitch name, start/end in seconds, velocity 0-127."""

    name: str
    start_sec: float
    end_sec: float
    velocity: int


class TempoMap:
    """Tick -> seconds conversion over a piecewise-constant tempo map."""

    def __init__(self, ticks_per_beat: int, changes: Sequence[tuple[int, int]]) -> None:
        if int(ticks_per_beat) <= 0:
            raise ValueError("ticks_per_beat must be >= 1")
        self.ticks_per_beat = int(ticks_per_beat)

        # Later changes at the same tick win.
        declared: dict[int, int] = {}
        for tick, tempo in sorted(changes, key=lambda item: item[0]):
            declared[int(tick)] = int(tempo)
        self.declared = tuple(
            TempoPoint(tick=tick, bpm=float(mido.tempo2bpm(tempo)))
            for tick, tempo in sorted(declared.items())
        )

        by_tick = dict(declared)
        by_tick.setdefault(0, DEFAULT_TEMPO_US_PER_BEAT)
        self._ticks: list[int] = sorted(by_tick)
        self._tempos: list[int] = [by_tick[tick] for tick in self._ticks]
        self._seconds: list[float] = [0.0]
        for i in range(1, len(self._ticks)):
            span = self._ticks[i] - self._ticks[i - 1]
            self._seconds.append(
                self._seconds[-1]
                + mido.tick2second(span, self.ticks_per_beat, self._tempos[i - 1])
            )

    def seconds_at(self, tick: int) -> float:
        idx = bisect.bisect_right(self._ticks, int(tick)) - 1
        offset = int(tick) - self._ticks[idx]
        return self._seconds[idx] + mido.tick2second(
            offset, self.ticks_per_beat, self._tempos[idx]
        )


def _collect_tempo_changes(midi: mido.MidiFile) -> list[tuple[int, int]]:
    changes: list[tuple[int, int]] = []
    for track in midi.tracks:
        abs_tick = 0
        for msg in track:
            abs_tick += msg.time
            if msg.is_meta and msg.type == "set_tempo":
                changes.append((int(abs_tick), int(msg.tempo)))
    return changes


def _track_notes(track: mido.MidiTrack, tempo_map: TempoMap) -> list[SourceNote]:
    # key=(channel, pitch), value=FIFO of (start_tick, velocity, on_index) for open notes.
    active_notes: DefaultDict[tuple[int, int], list[tuple[int, int, int]]] = defaultdict(list)
    timed: list[tuple[int, int, SourceNote]] = []
    on_index = 0
    abs_tick = 0

    def close(start_tick: int, end_tick: int, pitch: int, velocity: int, index: int) -> None:
        start_sec = tempo_map.seconds_at(start_tick)
        end_sec = tempo_map.seconds_at(end_tick)
        timed.append(
            (
                int(start_tick),
                index,
                SourceNote(
                    pitch=int(pitch),
                    time=start_sec,
                    duration=max(0.0, end_sec - start_sec),
                    velocity=int(velocity) / 127.0,
                ),
            )
        )

    for msg in track:
        abs_tick += msg.time
        if msg.is_meta or not hasattr(msg, "channel"):
            continue

        if msg.type == "note_on" and msg.velocity > 0:
            active_notes[(msg.channel, msg.note)].append((abs_tick, msg.velocity, on_index))
            on_index += 1
            continue

        is_note_off = msg.type == "note_off" or (
            msg.type == "note_on" and msg.velocity == 0
        )
        if not is_note_off:
            continue

        key = (msg.channel, msg.note)
        if not active_notes[key]:
            # Note-off with no matching note-on.
            continue
        start_tick, velocity, index = active_notes[key].pop(0)
        close(start_tick, abs_tick, msg.note, velocity, index)

    # Close notes left sounding at the end of the track.
    for (_channel, pitch), pending in active_notes.items():
        for start_tick, velocity, index in pending:
            close(start_tick, abs_tick, pitch, velocity, index)

    timed.sort(key=lambda item: (item[0], item[1]))
    return [note for _, _, note in timed]


def read_midi_file(midi_path: str | Path) -> MidiContents:
    """Parse a MIDI file into per-track notes timed in seconds plus its tempo list."""
    midi = mido.MidiFile(str(midi_path))
    tempo_map = TempoMap(int(midi.ticks_per_beat), _collect_tempo_changes(midi))
    tracks = tuple(tuple(_track_notes(track, tempo_map)) for track in midi.tracks)
    return MidiContents(
        ticks_per_beat=int(midi.ticks_per_beat),
        tempos=tempo_map.declared,
        tracks=tracks,
    )


def extract_notes(contents: MidiContents) -> tuple[list[Note], int]:
    """
    Flatten all tracks into one note list sorted by start time.

    Returns: (notes, tempo_bpm). The tempo is the first declared tempo rounded
    to an integer, or 120 when the file declares none. Notes starting at the
    same time keep their track/encounter order.
    """
    tempo = int(round(contents.tempos[0].bpm)) if contents.tempos else DEFAULT_BPM

    notes: list[Note] = []
    for track in contents.tracks:
        for source in track:
            notes.append(
                Note(
                    name=number_to_name(source.pitch),
                    start_sec=source.time,
                    end_sec=source.time + source.duration,
                    velocity=int(round(source.velocity * 127)),
                )
            )

    # list.sort is stable: ties keep encounter order.
    notes.sort(key=lambda note: note.start_sec)
    return notes, tempo


def load_notes(midi_path: str | Path) -> tuple[list[Note], int]:
    return extract_notes(read_midi_file(midi_path))


def main() -> None:
    parser = argparse.ArgumentParser(description="Dump the flattened note list of a MIDI file.")
    parser.add_argument("midi_path", help="Path to input MIDI file.")
    parser.add_argument("--out", help="Optional output JSON path.")
    parser.add_argument(
        "--print-limit",
        type=int,
        default=20,
        help="How many notes to print when --out is not set.",
    )
    args = parser.parse_args()

    midi_path = Path(args.midi_path)
    if not midi_path.is_file():
        print(f"File not found: {midi_path.resolve()}", file=sys.stderr)
        raise SystemExit(1)

    notes, tempo = load_notes(midi_path)
    payload = {"tempo": tempo, "notes": [asdict(note) for note in notes]}

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Saved {len(notes)} notes to {out_path}")
    else:
        preview = dict(payload, notes=payload["notes"][: args.print_limit])
        print(json.dumps(preview, indent=2))
        print(f"\nTotal notes: {len(notes)}")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Write decoded notes to a MIDI file.

Output layout is always a type-1 file with two tracks:
- track 0 (conductor): one set_tempo at tick 0
- track 1: every note, expanded to note_on + note_off on channel 0

CLI (writes a one-octave C major scale, handy for checking a player):
    python midi_writer.py scale.mid --bpm 100
"""

from __future__ import annotations

import argparse
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import mido


@dataclass(frozen=True, slots=True)
class BuiltNote:
    """A note in absolute ticks with velocity normalized to [0, 1]."""

    pitch: int
    start_tick: int
    duration_ticks: int
    velocity: float


@dataclass(frozen=True, slots=True)
class _ScheduledMessage:
    abs_tick: int
    priority: int
    key: int
    sequence: int
    message: "mido.Message | mido.MetaMessage"


def _event_sort_key(event: _ScheduledMessage) -> tuple[int, int, int, int]:
    return (event.abs_tick, event.priority, event.key, event.sequence)


def _midi_velocity(velocity: float) -> int:
    # note_on with velocity 0 reads back as note_off, so the floor is 1.
    return max(1, min(127, int(round(float(velocity) * 127))))


def _append_with_delta_times(
    track: mido.MidiTrack, scheduled_events: list[_ScheduledMessage]
) -> None:
    prev_abs_tick = 0
    for item in scheduled_events:
        delta = int(item.abs_tick - prev_abs_tick)
        if delta < 0:
            raise ValueError("Scheduled events must be non-decreasing in time.")
        track.append(item.message.copy(time=delta))
        prev_abs_tick = item.abs_tick
    track.append(mido.MetaMessage("end_of_track", time=0))


def build_midi_file(
    *,
    bpm: float,
    ticks_per_beat: int,
    notes: Iterable[BuiltNote],
) -> mido.MidiFile:
    """
    Build a type-1 MIDI file holding one tempo and one note track.

    At the same tick, sounding notes are released before new notes start;
    a zero-length note is written as note_on directly followed by its note_off.
    """
    if float(bpm) <= 0:
        raise ValueError("bpm must be > 0")
    if int(ticks_per_beat) <= 0:
        raise ValueError("ticks_per_beat must be >= 1")

    scheduled: list[_ScheduledMessage] = []
    for sequence, note in enumerate(notes):
        start_tick = int(note.start_tick)
        duration = int(note.duration_ticks)
        if start_tick < 0 or duration < 0:
            raise ValueError(f"Note has negative timing: {note!r}")

        scheduled.append(
            _ScheduledMessage(
                abs_tick=start_tick,
                priority=1,
                key=int(note.pitch),
                sequence=sequence,
                message=mido.Message(
                    "note_on",
                    channel=0,
                    note=int(note.pitch),
                    velocity=_midi_velocity(note.velocity),
                    time=0,
                ),
            )
        )
        scheduled.append(
            _ScheduledMessage(
                abs_tick=start_tick + duration,
                priority=0 if duration > 0 else 2,
                key=int(note.pitch),
                sequence=sequence,
                message=mido.Message(
                    "note_off",
                    channel=0,
                    note=int(note.pitch),
                    velocity=0,
                    time=0,
                ),
            )
        )
    scheduled.sort(key=_event_sort_key)

    conductor_track = mido.MidiTrack()
    conductor_track.append(
        mido.MetaMessage("set_tempo", tempo=int(round(mido.bpm2tempo(float(bpm)))), time=0)
    )
    conductor_track.append(mido.MetaMessage("end_of_track", time=0))

    performance_track = mido.MidiTrack()
    _append_with_delta_times(performance_track, scheduled)

    midi = mido.MidiFile(type=1, ticks_per_beat=int(ticks_per_beat))
    midi.tracks.append(conductor_track)
    midi.tracks.append(performance_track)
    return midi


def midi_to_bytes(midi: mido.MidiFile) -> bytes:
    buffer = io.BytesIO()
    midi.save(file=buffer)
    return buffer.getvalue()


def write_midi(
    path_out: str | Path,
    *,
    bpm: float,
    ticks_per_beat: int,
    notes: Iterable[BuiltNote],
) -> Path:
    """Serialize the notes and write them to `path_out`, overwriting any existing file."""
    midi = build_midi_file(bpm=bpm, ticks_per_beat=ticks_per_beat, notes=notes)
    out_path = Path(path_out)
    out_path.write_bytes(midi_to_bytes(midi))
    return out_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a C major scale as a test MIDI file.")
    parser.add_argument("output_mid", help="Path to output MIDI file.")
    parser.add_argument("--bpm", type=float, default=120.0)
    parser.add_argument("--ticks-per-beat", type=int, default=480, dest="ticks_per_beat")
    args = parser.parse_args()

    tpb = int(args.ticks_per_beat)
    notes = [
        BuiltNote(pitch=pitch, start_tick=i * tpb, duration_ticks=tpb, velocity=100 / 127)
        for i, pitch in enumerate((60, 62, 64, 65, 67, 69, 71, 72))
    ]
    out_path = write_midi(args.output_mid, bpm=args.bpm, ticks_per_beat=tpb, notes=notes)
    print(f"Wrote MIDI: {out_path}")


if __name__ == "__main__":
    main()

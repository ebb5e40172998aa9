from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import mido
import pytest

# (pitch, start_tick, end_tick, velocity)
NoteSpec = tuple[int, int, int, int]


def write_test_midi(
    path: Path,
    tracks: Sequence[Sequence[NoteSpec]],
    *,
    ticks_per_beat: int = 480,
    tempos: Sequence[tuple[int, int]] = ((0, 500_000),),
) -> Path:
    """Write a type-1 MIDI file: conductor track with `tempos`, then one track per note list."""
    midi = mido.MidiFile(type=1, ticks_per_beat=ticks_per_beat)

    conductor = mido.MidiTrack()
    prev = 0
    for tick, tempo in sorted(tempos):
        conductor.append(mido.MetaMessage("set_tempo", tempo=tempo, time=tick - prev))
        prev = tick
    conductor.append(mido.MetaMessage("end_of_track", time=0))
    midi.tracks.append(conductor)

    for notes in tracks:
        scheduled: list[tuple[int, int, mido.Message]] = []
        for pitch, start, end, velocity in notes:
            scheduled.append(
                (start, 1, mido.Message("note_on", note=pitch, velocity=velocity, time=0))
            )
            scheduled.append(
                (end, 0, mido.Message("note_off", note=pitch, velocity=0, time=0))
            )
        scheduled.sort(key=lambda item: (item[0], item[1]))

        track = mido.MidiTrack()
        prev = 0
        for tick, _prio, msg in scheduled:
            track.append(msg.copy(time=tick - prev))
            prev = tick
        track.append(mido.MetaMessage("end_of_track", time=0))
        midi.tracks.append(track)

    midi.save(str(path))
    return path


@pytest.fixture
def make_midi(tmp_path: Path) -> Callable[..., Path]:
    counter = {"n": 0}

    def _make(tracks: Sequence[Sequence[NoteSpec]], **kwargs) -> Path:
        counter["n"] += 1
        return write_test_midi(tmp_path / f"input_{counter['n']}.mid", tracks, **kwargs)

    return _make

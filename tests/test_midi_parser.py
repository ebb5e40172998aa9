"""MIDI reading and note extraction tests."""

from __future__ import annotations

import sys

import mido
import pytest

import midi_parser
from midi_parser import (
    MidiContents,
    Note,
    SourceNote,
    TempoMap,
    TempoPoint,
    extract_notes,
    load_notes,
    read_midi_file,
)


def test_read_midi_file_times_notes_in_seconds(make_midi):
    path = make_midi([[(60, 0, 480, 100), (64, 480, 1440, 127)]])
    contents = read_midi_file(path)

    assert contents.ticks_per_beat == 480
    assert [t.bpm for t in contents.tempos] == [pytest.approx(120.0)]
    # conductor track has no notes
    assert contents.tracks[0] == ()
    first, second = contents.tracks[1]
    assert first.pitch == 60
    assert first.time == pytest.approx(0.0)
    assert first.duration == pytest.approx(0.5)
    assert first.velocity == pytest.approx(100 / 127)
    assert second.time == pytest.approx(0.5)
    assert second.duration == pytest.approx(1.0)
    assert second.velocity == pytest.approx(1.0)


def test_tempo_changes_apply_to_later_notes(make_midi):
    path = make_midi(
        [[(60, 1440, 1920, 90)]],
        tempos=((0, 500_000), (960, 250_000)),
    )
    notes, tempo = load_notes(path)

    assert tempo == 120
    (note,) = notes
    # 960 ticks at 120 bpm + 480 ticks at 240 bpm
    assert note.start_sec == pytest.approx(1.25)
    assert note.end_sec == pytest.approx(1.5)


def test_tempo_map_defaults_to_120_bpm():
    tempo_map = TempoMap(480, [])
    assert tempo_map.declared == ()
    assert tempo_map.seconds_at(960) == pytest.approx(1.0)


def test_extract_notes_uses_first_tempo_rounded(make_midi):
    path = make_midi([[(60, 0, 480, 100)]], tempos=((0, mido.bpm2tempo(97.4)),))
    _, tempo = load_notes(path)
    assert tempo == 97


def test_extract_notes_without_tempo_defaults_to_120():
    contents = MidiContents(
        ticks_per_beat=480,
        tempos=(),
        tracks=((SourceNote(pitch=60, time=0.0, duration=0.5, velocity=0.5),),),
    )
    notes, tempo = extract_notes(contents)
    assert tempo == 120
    assert notes == [Note(name="C4", start_sec=0.0, end_sec=0.5, velocity=64)]


def test_extract_notes_flattens_and_sorts_stably():
    contents = MidiContents(
        ticks_per_beat=480,
        tempos=(TempoPoint(tick=0, bpm=100.0),),
        tracks=(
            (
                SourceNote(pitch=64, time=0.0, duration=1.0, velocity=1.0),
                SourceNote(pitch=67, time=2.0, duration=0.5, velocity=1.0),
            ),
            (
                SourceNote(pitch=60, time=0.0, duration=1.0, velocity=1.0),
                SourceNote(pitch=62, time=1.0, duration=0.5, velocity=1.0),
            ),
        ),
    )
    notes, tempo = extract_notes(contents)

    assert tempo == 100
    # E4 and C4 start together; E4 was seen first (earlier track).
    assert [n.name for n in notes] == ["E4", "C4", "D4", "G4"]


def test_note_on_with_zero_velocity_ends_note(tmp_path):
    midi = mido.MidiFile(type=0, ticks_per_beat=480)
    track = mido.MidiTrack()
    track.append(mido.Message("note_on", note=60, velocity=80, time=0))
    track.append(mido.Message("note_on", note=60, velocity=0, time=240))
    track.append(mido.Message("note_off", note=62, velocity=0, time=10))
    midi.tracks.append(track)
    path = tmp_path / "running.mid"
    midi.save(str(path))

    notes, _ = load_notes(path)
    # Stray note_off for 62 is ignored.
    assert notes == [Note(name="C4", start_sec=0.0, end_sec=pytest.approx(0.25), velocity=80)]


def test_notes_left_sounding_close_at_track_end(tmp_path):
    midi = mido.MidiFile(type=0, ticks_per_beat=480)
    track = mido.MidiTrack()
    track.append(mido.Message("note_on", note=72, velocity=50, time=480))
    track.append(mido.MetaMessage("end_of_track", time=480))
    midi.tracks.append(track)
    path = tmp_path / "dangling.mid"
    midi.save(str(path))

    (note,) = load_notes(path)[0]
    assert note.name == "C5"
    assert note.start_sec == pytest.approx(0.5)
    assert note.end_sec == pytest.approx(1.0)


def test_cli_missing_file_exits_with_status_1(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["midi_parser.py", str(tmp_path / "nope.mid")])
    with pytest.raises(SystemExit) as excinfo:
        midi_parser.main()

    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert "File not found" in captured.err
    assert captured.out == ""

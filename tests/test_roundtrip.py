"""End-to-end MIDI -> tokens -> MIDI tests."""

from __future__ import annotations

import sys

import pytest

import midi_roundtrip
from midi_parser import Note, load_notes
from midi_roundtrip import compare_notes, generate_midi
from token_decoder import tokens_to_midi
from token_encoder import midi_to_tokens


def _assert_near_identity(notes_in, notes_out, *, tempo, timebase):
    seconds_per_tick = 60.0 / tempo / timebase
    key = lambda n: (round(n.start_sec / seconds_per_tick), n.name)  # noqa: E731
    assert len(notes_in) == len(notes_out)
    for a, b in zip(sorted(notes_in, key=key), sorted(notes_out, key=key)):
        assert a.name == b.name
        assert a.velocity == b.velocity
        assert abs(a.start_sec - b.start_sec) <= seconds_per_tick / 2 + 1e-9
        assert abs(a.end_sec - b.end_sec) <= seconds_per_tick / 2 + 1e-9


def test_encode_decode_near_identity(make_midi, tmp_path):
    midi_path = make_midi(
        [
            [(60, 0, 480, 100), (64, 480, 960, 90), (67, 960, 1920, 80)],
            [(48, 0, 1920, 70), (55, 240, 300, 127)],
        ]
    )
    out_path = tokens_to_midi(midi_to_tokens(midi_path, timebase=480), tmp_path / "out.mid")

    notes_in, tempo = load_notes(midi_path)
    notes_out, tempo_out = load_notes(out_path)
    assert tempo == tempo_out == 120
    _assert_near_identity(notes_in, notes_out, tempo=120, timebase=480)


def test_near_identity_with_coarser_timebase(make_midi, tmp_path):
    # Input resolution is finer than the token timebase.
    midi_path = make_midi(
        [[(62, 7, 301, 55), (65, 333, 334, 12), (69, 1000, 1999, 101)]],
        ticks_per_beat=960,
        tempos=((0, 750_000),),
    )
    out_path = generate_midi(midi_path, timebase=96, output_path=tmp_path / "coarse.mid")

    notes_in, tempo = load_notes(midi_path)
    notes_out, _ = load_notes(out_path)
    assert tempo == 80
    _assert_near_identity(notes_in, notes_out, tempo=80, timebase=96)


def test_generate_midi_writes_default_output(make_midi, tmp_path, monkeypatch):
    midi_path = make_midi([[(60, 0, 480, 100)]])
    monkeypatch.chdir(tmp_path)

    out_path = generate_midi(midi_path)
    assert out_path.name == "output.mid"
    assert load_notes(tmp_path / "output.mid")[0] == [
        Note(name="C4", start_sec=0.0, end_sec=pytest.approx(0.5), velocity=100)
    ]


def test_generate_midi_missing_input(tmp_path):
    with pytest.raises(FileNotFoundError):
        generate_midi(tmp_path / "missing.mid", output_path=tmp_path / "out.mid")
    assert not (tmp_path / "out.mid").exists()


def test_compare_notes_reports_drift_and_mismatches():
    expected = [
        Note(name="C4", start_sec=0.0, end_sec=0.5, velocity=100),
        Note(name="E4", start_sec=1.0, end_sec=1.5, velocity=100),
    ]
    actual = [
        Note(name="C4", start_sec=0.0, end_sec=0.5, velocity=99),
        Note(name="E4", start_sec=1.0, end_sec=1.6, velocity=100),
    ]
    drifts, problems = compare_notes(expected, actual, tempo=120, timebase=480)

    assert problems == ["note[0] C4 velocity 100 became 99"]
    assert [(d.name, d.start_ticks, d.end_ticks) for d in drifts] == [("E4", 0, 96)]


def test_roundtrip_cli_reports_ok(make_midi, tmp_path, monkeypatch, capsys):
    midi_path = make_midi([[(60, 0, 480, 100), (72, 480, 720, 64)]])
    out_path = tmp_path / "rt.mid"
    monkeypatch.setattr(
        sys, "argv", ["midi_roundtrip.py", str(midi_path), "--out", str(out_path)]
    )
    midi_roundtrip.main()

    out = capsys.readouterr().out
    assert "OK (2 notes" in out
    assert out_path.exists()

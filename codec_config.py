"""Shared defaults for the encoder, decoder and their CLIs."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CodecConfig:
    # Header values assumed when a token stream omits TEMPO / TIMEBASE.
    default_bpm: int = 120
    default_timebase: int = 480
    default_output: str = "output.mid"
    # Max per-note start/end drift (ticks) accepted by the round-trip check.
    drift_tolerance_ticks: int = 1

    def __post_init__(self) -> None:
        if self.default_bpm <= 0:
            raise ValueError("default_bpm must be >= 1")
        if self.default_timebase <= 0:
            raise ValueError("default_timebase must be >= 1")
        if self.drift_tolerance_ticks < 0:
            raise ValueError("drift_tolerance_ticks must be >= 0")


DEFAULT_CONFIG = CodecConfig()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

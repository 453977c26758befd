"""Conversion settings and chart metadata supplied by the caller."""

from dataclasses import dataclass, field

DEFAULT_LANE_COUNT = 4
DEFAULT_HOLD_THRESHOLD = 1.0  # beats
LINE_MODES = ("lane", "track")


@dataclass(frozen=True)
class ConvertConfig:
    lane_count: int = DEFAULT_LANE_COUNT
    separation_rate: float = 0.0
    # Multiplies every reported BPM; beat positions are left as they are.
    speed: float = 1.0
    hold_threshold: float = DEFAULT_HOLD_THRESHOLD
    min_velocity: int = 1
    exclude_channels: frozenset[int] = field(default_factory=frozenset)
    quantize: int = 0   # grid in ticks, 0 = off
    max_chord: int = 0  # notes per start tick, 0 = unlimited
    line_mode: str = "lane"
    require_id: bool = True

    def __post_init__(self):
        if self.lane_count <= 0:
            raise ValueError("lane_count must be > 0")
        if not 0.0 <= self.separation_rate <= 1.0:
            raise ValueError("separation_rate must be within 0.0..1.0")
        if self.speed <= 0:
            raise ValueError("speed must be > 0")
        if self.hold_threshold < 0:
            raise ValueError("hold_threshold must be >= 0")
        if self.quantize < 0:
            raise ValueError("quantize must be >= 0")
        if self.max_chord < 0:
            raise ValueError("max_chord must be >= 0")
        if self.line_mode not in LINE_MODES:
            raise ValueError(f"line_mode must be one of {', '.join(LINE_MODES)}")
        object.__setattr__(self, "exclude_channels", frozenset(self.exclude_channels))


@dataclass(frozen=True)
class ChartMeta:
    chart_id: str | None = None
    name: str | None = None  # None: taken from the MIDI file
    song: str = ""
    background: str = ""
    charter: str = ""
    composer: str = ""
    level: str = ""
    offset: int = 0  # milliseconds

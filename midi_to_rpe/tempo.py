"""Tempo map and tick <-> chart time conversion.

A chart time is a (segment index, beat offset) pair: the tempo segment active
at the tick and the number of quarter notes elapsed since that segment began.
The source tick is kept alongside so RPE beat triples stay exact.
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from math import gcd

from midi_to_rpe.errors import EmptyTempoData, MalformedInput
from midi_to_rpe.midi_events import SET_TEMPO, MidiData

DEFAULT_TEMPO_US = 500000  # 120 BPM


def tempo2bpm(tempo: int) -> float:
    return 60_000_000 / tempo


@dataclass(frozen=True, order=True)
class ChartTime:
    segment_index: int
    beat_offset: float
    tick: int = field(default=0, compare=False)
    ticks_per_beat: int = field(default=1, compare=False)

    @property
    def beats(self) -> float:
        """Absolute position in quarter notes from the start of the song."""
        return self.tick / self.ticks_per_beat

    def triple(self) -> list[int]:
        beat, rem = divmod(self.tick, self.ticks_per_beat)
        if rem == 0:
            return [beat, 0, 1]
        div = gcd(rem, self.ticks_per_beat)
        return [beat, rem // div, self.ticks_per_beat // div]


@dataclass(frozen=True)
class TempoSegment:
    start_tick: int
    tempo: int
    bpm: float
    start_seconds: float


@dataclass(frozen=True)
class TempoMap:
    ticks_per_beat: int
    segments: tuple[TempoSegment, ...]
    _starts: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_starts", tuple(seg.start_tick for seg in self.segments))

    def segment_index_at(self, tick: int) -> int:
        if not self.segments:
            raise EmptyTempoData("tempo map has no segments")
        if tick < 0:
            raise ValueError(f"tick must be >= 0, got {tick}")
        # [start, next_start): a boundary tick belongs to the later segment.
        return max(0, bisect_right(self._starts, tick) - 1)

    def segment_at(self, tick: int) -> TempoSegment:
        return self.segments[self.segment_index_at(tick)]

    def bpm_at(self, tick: int) -> float:
        return self.segment_at(tick).bpm

    def tick_to_chart_time(self, tick: int) -> ChartTime:
        index = self.segment_index_at(tick)
        seg = self.segments[index]
        offset = (tick - seg.start_tick) / self.ticks_per_beat
        return ChartTime(index, offset, tick, self.ticks_per_beat)

    def chart_time_to_tick(self, time: ChartTime) -> int:
        seg = self.segments[time.segment_index]
        return seg.start_tick + int(round(time.beat_offset * self.ticks_per_beat))

    def chart_time_to_seconds(self, time: ChartTime) -> float:
        seg = self.segments[time.segment_index]
        return seg.start_seconds + time.beat_offset * 60.0 / seg.bpm

    def tick_to_seconds(self, tick: int) -> float:
        return self.chart_time_to_seconds(self.tick_to_chart_time(tick))

    def segment_times(self) -> list[ChartTime]:
        """Start of every segment, each expressed inside its predecessor."""
        out = []
        for i, seg in enumerate(self.segments):
            if i == 0:
                out.append(ChartTime(0, 0.0, seg.start_tick, self.ticks_per_beat))
                continue
            prev = self.segments[i - 1]
            offset = (seg.start_tick - prev.start_tick) / self.ticks_per_beat
            out.append(ChartTime(i - 1, offset, seg.start_tick, self.ticks_per_beat))
        return out


def _get_tempo_events(midi: MidiData) -> list[tuple[int, int]]:
    events: list[tuple[int, int]] = []
    for index in range(len(midi.tracks)):
        for ev in midi.iter_track(index):
            if ev.kind == SET_TEMPO:
                events.append((ev.tick, ev.tempo))
    # Stable sort: events sharing a tick stay in encounter order.
    events.sort(key=lambda x: x[0])
    deduped: list[tuple[int, int]] = []
    for tick, tempo in events:
        if tempo <= 0:
            raise MalformedInput(f"invalid tempo {tempo} at tick {tick}")
        if deduped and deduped[-1][0] == tick:
            deduped[-1] = (tick, tempo)
        else:
            deduped.append((tick, tempo))
    if not deduped or deduped[0][0] != 0:
        deduped.insert(0, (0, DEFAULT_TEMPO_US))
    return deduped


def build_tempo_map(midi: MidiData, speed: float = 1.0) -> TempoMap:
    events = _get_tempo_events(midi)
    tpb = midi.ticks_per_beat
    segments = []
    seconds_at_start = 0.0

    for i, (tick, tempo) in enumerate(events):
        bpm = tempo2bpm(tempo) * speed
        segments.append(TempoSegment(tick, tempo, bpm, seconds_at_start))
        if i + 1 < len(events):
            dticks = events[i + 1][0] - tick
            seconds_at_start += (60.0 / bpm) * (dticks / tpb)

    return TempoMap(tpb, tuple(segments))

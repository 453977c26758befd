"""Chart assembly and the RPE object graph.

RPE keeps every time as a beat triple ``[beat, numerator, denominator]`` and
tempo changes in ``BPMList``; notes live on judge lines and are placed
horizontally with ``positionX`` on a 1350-unit wide field centred on 0.
"""

from dataclasses import dataclass, field

from midi_to_rpe.config import ChartMeta, ConvertConfig
from midi_to_rpe.errors import MissingRequiredField
from midi_to_rpe.midi_events import DEFAULT_CHART_NAME
from midi_to_rpe.notes import NoteEvent
from midi_to_rpe.tempo import ChartTime, TempoMap

RPE_VERSION = 150
RPE_WIDTH = 1350.0
LINE_TEXTURE = "line.png"
LINE_Y = -250.0
LINE_SPEED = 10.0
NOTE_VISIBLE_TIME = 999999.0

NOTE_TYPE_TAP = 1
NOTE_TYPE_HOLD = 2
NOTE_TYPES = {"tap": NOTE_TYPE_TAP, "hold": NOTE_TYPE_HOLD}


@dataclass(frozen=True)
class ChartNote:
    time: ChartTime
    end_time: ChartTime
    lane: int
    hold_beats: float
    kind: str
    note: int
    track: int


@dataclass
class JudgeLine:
    name: str
    notes: list[ChartNote] = field(default_factory=list)


@dataclass
class Chart:
    meta: ChartMeta
    lane_count: int
    bpm_list: list[tuple[ChartTime, float]]
    judge_lines: list[JudgeLine]

    @property
    def note_count(self) -> int:
        return sum(len(line.notes) for line in self.judge_lines)


def lane_x(lane: int, lane_count: int) -> float:
    """Centre of a lane on the RPE field."""
    return ((lane + 0.5) / lane_count - 0.5) * RPE_WIDTH


def make_chart_note(tempo_map: TempoMap, note: NoteEvent, lane: int, hold_threshold: float) -> ChartNote:
    start = tempo_map.tick_to_chart_time(note.start_tick)
    hold_beats = note.duration / tempo_map.ticks_per_beat
    if hold_beats > hold_threshold:
        end = tempo_map.tick_to_chart_time(note.end_tick)
        return ChartNote(start, end, lane, hold_beats, "hold", note.note, note.track)
    return ChartNote(start, start, lane, 0.0, "tap", note.note, note.track)


def _note_order(n: ChartNote):
    return (n.time, n.lane, n.note, n.track)


def assemble_chart(
    tempo_map: TempoMap,
    lane_notes: list[tuple[NoteEvent, int]],
    meta: ChartMeta,
    config: ConvertConfig,
    track_names: tuple[str, ...] = (),
) -> Chart:
    if config.require_id and not meta.chart_id:
        raise MissingRequiredField("chart id is required")

    bpm_list = [(time, seg.bpm) for time, seg in zip(tempo_map.segment_times(), tempo_map.segments)]
    notes = [make_chart_note(tempo_map, n, lane, config.hold_threshold) for n, lane in lane_notes]

    if config.line_mode == "track":
        by_track: dict[int, list[ChartNote]] = {}
        for n in notes:
            by_track.setdefault(n.track, []).append(n)
        lines = []
        for track in sorted(by_track):
            name = track_names[track] if track < len(track_names) and track_names[track] else f"Track {track}"
            lines.append(JudgeLine(name, sorted(by_track[track], key=_note_order)))
    else:
        lines = [JudgeLine(f"Lane {lane}") for lane in range(config.lane_count)]
        for n in notes:
            lines[n.lane].notes.append(n)
        for line in lines:
            line.notes.sort(key=_note_order)

    return Chart(meta, config.lane_count, bpm_list, lines)


def _constant_event(value: float) -> dict:
    return {
        "bezier": 0,
        "bezierPoints": [0.0, 0.0, 0.0, 0.0],
        "easingLeft": 0.0,
        "easingRight": 1.0,
        "easingType": 1,
        "end": value,
        "endTime": [1, 0, 1],
        "linkgroup": 0,
        "start": value,
        "startTime": [0, 0, 1],
    }


def default_event_layer() -> dict:
    return {
        "alphaEvents": [_constant_event(255.0)],
        "moveXEvents": [_constant_event(0.0)],
        "moveYEvents": [_constant_event(LINE_Y)],
        "rotateEvents": [_constant_event(0.0)],
        "speedEvents": [
            {"end": LINE_SPEED, "endTime": [1, 0, 1], "linkgroup": 0, "start": LINE_SPEED, "startTime": [0, 0, 1]}
        ],
    }


def note_to_rpe(note: ChartNote, lane_count: int) -> dict:
    return {
        "above": 1,
        "alpha": 255,
        "startTime": note.time.triple(),
        "endTime": note.end_time.triple(),
        "isFake": 0,
        "positionX": lane_x(note.lane, lane_count),
        "size": 1.0,
        "speed": 1.0,
        "type": NOTE_TYPES[note.kind],
        "visibleTime": NOTE_VISIBLE_TIME,
        "yOffset": 0.0,
    }


def judge_line_to_rpe(line: JudgeLine, lane_count: int) -> dict:
    notes = [note_to_rpe(n, lane_count) for n in line.notes]
    return {
        "Group": 0,
        "Name": line.name,
        "Texture": LINE_TEXTURE,
        "bpmfactor": 1.0,
        "eventLayers": [default_event_layer()],
        "father": -1,
        "isCover": 1,
        "notes": notes,
        "numOfNotes": len(notes),
        "zOrder": 0,
    }


def chart_to_rpe(chart: Chart) -> dict:
    """JSON-ready RPE document for a chart."""
    meta = chart.meta
    return {
        "BPMList": [{"bpm": bpm, "startTime": time.triple()} for time, bpm in chart.bpm_list],
        "META": {
            "RPEVersion": RPE_VERSION,
            "background": meta.background,
            "charter": meta.charter,
            "composer": meta.composer,
            "id": meta.chart_id or "",
            "level": meta.level,
            "name": meta.name or DEFAULT_CHART_NAME,
            "offset": meta.offset,
            "song": meta.song,
        },
        "judgeLineList": [judge_line_to_rpe(line, chart.lane_count) for line in chart.judge_lines],
    }

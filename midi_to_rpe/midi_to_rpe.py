#!/usr/bin/env python
"""MIDI -> RPE chart converter.

Stage 1: MIDI parsing + tempo map.
Stage 2: Note pairing, filtering and lane assignment.
Stage 3: Chart assembly and RPE JSON output.
"""

import sys
import argparse
import json
import os
import tempfile
from collections import Counter
from dataclasses import dataclass, replace

from midi_to_rpe.chart import Chart, assemble_chart, chart_to_rpe
from midi_to_rpe.config import DEFAULT_HOLD_THRESHOLD, DEFAULT_LANE_COUNT, LINE_MODES, ChartMeta, ConvertConfig
from midi_to_rpe.errors import ConversionError, ConversionWarning
from midi_to_rpe.lanes import assign_lanes, lane_count_from_template
from midi_to_rpe.midi_events import chart_name, parse_midi
from midi_to_rpe.notes import extract_notes
from midi_to_rpe.tempo import TempoMap, build_tempo_map


@dataclass
class ConversionResult:
    chart: Chart
    document: dict
    tempo_map: TempoMap
    stats: dict
    warnings: list[ConversionWarning]


def convert(data: bytes, meta: ChartMeta, config: ConvertConfig | None = None) -> ConversionResult:
    """Convert Standard MIDI File bytes into an RPE chart.

    Parsing, tempo and assembly problems raise ConversionError subclasses and
    nothing is produced. Note-level problems are repaired and reported in
    ``warnings``.
    """
    config = config or ConvertConfig()
    midi = parse_midi(data)
    tempo_map = build_tempo_map(midi, config.speed)
    notes, stats, warnings = extract_notes(midi, config)
    lane_notes, lane_stats = assign_lanes(
        notes,
        config.lane_count,
        config.separation_rate,
        hold_ticks=config.hold_threshold * midi.ticks_per_beat,
    )
    if meta.name is None:
        meta = replace(meta, name=chart_name(midi))
    chart = assemble_chart(tempo_map, lane_notes, meta, config, midi.track_names)

    stats.update(
        {
            "midi_type": midi.midi_type,
            "ticks_per_beat": midi.ticks_per_beat,
            "tracks": len(midi.tracks),
            "total_ticks": max(midi.track_end_ticks, default=0),
            "tempo_segments": len(tempo_map.segments),
            "lanes_contested": lane_stats["contested"],
            "lanes_moved": lane_stats["moved"],
            "hold_notes": sum(1 for line in chart.judge_lines for n in line.notes if n.kind == "hold"),
        }
    )
    return ConversionResult(chart, chart_to_rpe(chart), tempo_map, stats, warnings)


def _format_summary(result: ConversionResult) -> str:
    stats = result.stats
    chart = result.chart
    lines = [
        f"MIDI summary: type={stats['midi_type']}, ticks_per_beat={stats['ticks_per_beat']}, "
        f"tracks={stats['tracks']}, total_ticks={stats['total_ticks']}",
        f"Tempo: segments={stats['tempo_segments']} "
        + " ".join(f"{seg.bpm:.3f}@{seg.start_tick}" for seg in result.tempo_map.segments[:8]),
        f"Notes: kept={chart.note_count} holds={stats['hold_notes']} "
        f"paired={stats.get('paired_notes', 0)}",
    ]
    dropped = [
        f"{label}={stats[key]}"
        for key, label in (
            ("dropped_velocity", "velocity"),
            ("dropped_channel", "channel"),
            ("dropped_density", "density"),
        )
        if stats.get(key, 0)
    ]
    if dropped:
        lines.append("Dropped: " + " ".join(dropped))
    if stats.get("orphan_note_off", 0) or stats.get("unterminated_notes", 0):
        lines.append(
            f"Repaired: orphan_note_off={stats.get('orphan_note_off', 0)} "
            f"unterminated={stats.get('unterminated_notes', 0)} "
            f"overlapping={stats.get('overlapping_note_on', 0)}"
        )
    if stats["lanes_contested"]:
        lines.append(f"Lane separation: contested={stats['lanes_contested']} moved={stats['lanes_moved']}")

    per_lane = Counter(n.lane for line in chart.judge_lines for n in line.notes)
    if per_lane:
        usage = " ".join(f"lane{lane}:{count}" for lane, count in sorted(per_lane.items()))
        lines.append(f"Lane usage: {usage}")

    preview = sorted(
        (n for line in chart.judge_lines for n in line.notes),
        key=lambda n: (n.time, n.lane),
    )[:20]
    if preview:
        lines.append("First notes (beat/lane/kind/hold/note):")
        for n in preview:
            lines.append(f"  b={n.time.beats:9.3f} lane={n.lane:2d} {n.kind:4s} hold={n.hold_beats:6.3f} n={n.note:3d}")
    return "\n".join(lines) + "\n"


def _write_trace(path: str, header_lines: list[str], chart: Chart) -> None:
    if not path:
        return
    lines = []
    lines.extend(header_lines)
    lines.append("")
    for line in chart.judge_lines:
        lines.append(f"[LINE {line.name}]")
        for n in line.notes:
            lines.append(
                f"beat={n.time.beats:.6f} seg={n.time.segment_index} off={n.time.beat_offset:.6f} "
                f"lane={n.lane} kind={n.kind} hold={n.hold_beats:.6f} note={n.note} track={n.track}"
            )
        lines.append("")
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


def _file_mode() -> int:
    # Mode a plain open() would create with; os.umask can only be read by setting it.
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _write_atomic(path: str, text: str) -> None:
    # Write beside the target then swap in, so a failure never leaves half a chart.
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".midi_to_rpe-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(tmp_path, _file_mode())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Convert a MIDI file into an RPE chart (JSON)")
    parser.add_argument("input_mid", help="Input MIDI file")
    parser.add_argument("--id", dest="target_id", default=None, help="Id of the target chart")
    parser.add_argument("--song-file", default=None, help="Song file referred in the chart (default <id>.mp3)")
    parser.add_argument(
        "--background-file",
        default=None,
        help="Background image referred in the chart (default <id>.png)",
    )
    parser.add_argument("-o", "--output", dest="output_path", default=None, help="Output path (default <id>.json)")
    parser.add_argument("--lanes", type=int, default=None, help=f"Lane count (default {DEFAULT_LANE_COUNT})")
    parser.add_argument("--template", default=None, help="RPE chart whose judge line count sets the lane count")
    parser.add_argument(
        "--separation-rate",
        type=float,
        default=0.0,
        help="Share of stacked notes moved to a free lane, 0.0..1.0 (default 0.0)",
    )
    parser.add_argument("--speed", type=float, default=1.0, help="Multiplier applied to every BPM (default 1.0)")
    parser.add_argument(
        "--hold-threshold",
        type=float,
        default=DEFAULT_HOLD_THRESHOLD,
        help=f"Notes longer than this many beats become holds (default {DEFAULT_HOLD_THRESHOLD})",
    )
    parser.add_argument("--min-velocity", type=int, default=1, help="Drop notes quieter than this")
    parser.add_argument(
        "--exclude-channel",
        type=int,
        action="append",
        default=[],
        help="MIDI channel (0-15) to ignore; repeatable, e.g. 9 for GM drums",
    )
    parser.add_argument("--quantize", type=int, default=0, help="Snap notes to this grid in ticks (0 = off)")
    parser.add_argument("--max-chord", type=int, default=0, help="Max notes per start tick (0 = unlimited)")
    parser.add_argument("--line-mode", choices=list(LINE_MODES), default="lane", help="One judge line per lane or per track")
    parser.add_argument("--name", default=None, help="Chart name (default: MIDI track name)")
    parser.add_argument("--charter", default="", help="Charter credited in the chart")
    parser.add_argument("--composer", default="", help="Composer credited in the chart")
    parser.add_argument("--level", default="", help="Level string shown in the chart")
    parser.add_argument("--indent", type=int, default=None, help="Pretty-print the JSON with this indent")
    parser.add_argument(
        "--trace-output",
        type=str,
        default="",
        help="Write a trace log (every note with its lane and timing) to this file",
    )
    parser.add_argument("-q", "--quiet", action="store_true", default=False, help="Only print warnings and errors")
    return parser.parse_args(argv[1:])


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv if argv is None else argv)

    if args.lanes is not None and args.template:
        print("Error: use either --lanes or --template, not both.")
        return 2
    lane_count = DEFAULT_LANE_COUNT if args.lanes is None else args.lanes
    if args.template:
        try:
            with open(args.template, "r", encoding="utf-8") as f:
                lane_count = lane_count_from_template(json.load(f))
        except (OSError, ValueError) as exc:
            print(f"Error: cannot use template {args.template}: {exc}")
            return 2

    try:
        config = ConvertConfig(
            lane_count=lane_count,
            separation_rate=args.separation_rate,
            speed=args.speed,
            hold_threshold=args.hold_threshold,
            min_velocity=args.min_velocity,
            exclude_channels=frozenset(args.exclude_channel),
            quantize=args.quantize,
            max_chord=args.max_chord,
            line_mode=args.line_mode,
        )
    except ValueError as exc:
        print(f"Error: {exc}.")
        return 2

    target_id = args.target_id
    song_file = args.song_file or (f"{target_id}.mp3" if target_id else "")
    background_file = args.background_file or (f"{target_id}.png" if target_id else "")
    output_path = args.output_path or (f"{target_id}.json" if target_id else "")
    meta = ChartMeta(
        chart_id=target_id,
        name=args.name,
        song=os.path.basename(song_file),
        background=os.path.basename(background_file),
        charter=args.charter,
        composer=args.composer,
        level=args.level,
    )

    try:
        with open(args.input_mid, "rb") as f:
            data = f.read()
    except OSError as exc:
        print(f"Error: cannot read {args.input_mid}: {exc}")
        return 2

    try:
        result = convert(data, meta, config)
    except ConversionError as exc:
        print(f"Error: {exc}")
        return 2

    if not args.quiet:
        print(_format_summary(result), end="")
    for w in result.warnings:
        print(f"Warning: {w}")

    text = json.dumps(result.document, ensure_ascii=False, indent=args.indent)
    try:
        _write_atomic(output_path, text)
    except OSError as exc:
        print(f"Error: cannot write {output_path}: {exc}")
        return 2

    if args.trace_output:
        header_lines = [
            f"input={args.input_mid}",
            f"output={output_path}",
            f"id={target_id}",
            f"lanes={config.lane_count}",
            f"separation_rate={config.separation_rate}",
            f"speed={config.speed}",
            f"hold_threshold={config.hold_threshold}",
            f"line_mode={config.line_mode}",
        ]
        try:
            _write_trace(args.trace_output, header_lines, result.chart)
        except OSError as exc:
            print(f"Error: cannot write {args.trace_output}: {exc}")
            return 2

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))

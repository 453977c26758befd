"""Note extraction: pair note_on/note_off per track, then filter and tidy."""

from collections import defaultdict
from dataclasses import dataclass, replace

from midi_to_rpe.config import ConvertConfig
from midi_to_rpe.errors import ConversionWarning, OverlappingNoteOn
from midi_to_rpe.midi_events import NOTE_OFF, NOTE_ON, MidiData

MIN_NOTE_TICKS = 1


@dataclass(frozen=True)
class NoteEvent:
    start_tick: int
    end_tick: int
    note: int
    channel: int
    track: int
    velocity: int

    @property
    def duration(self) -> int:
        return self.end_tick - self.start_tick


def _close(start_tick: int, end_tick: int, key: tuple[int, int], velocity: int, track: int) -> NoteEvent:
    channel, note = key
    if end_tick <= start_tick:
        end_tick = start_tick + MIN_NOTE_TICKS
    return NoteEvent(start_tick, end_tick, note, channel, track, velocity)


def _extract_track_notes(
    midi: MidiData,
    index: int,
    stats: dict,
    warnings: list[ConversionWarning],
) -> list[NoteEvent]:
    # (channel, note) -> (start_tick, velocity)
    active: dict[tuple[int, int], tuple[int, int]] = {}
    notes: list[NoteEvent] = []

    for ev in midi.iter_track(index):
        if ev.kind == NOTE_ON:
            key = (ev.channel, ev.note)
            stats["note_on_events"] += 1
            if key in active:
                start_tick, start_vel = active.pop(key)
                warnings.append(OverlappingNoteOn(index, ev.channel, ev.note, start_tick, ev.tick))
                stats["overlapping_note_on"] += 1
                notes.append(_close(start_tick, ev.tick, key, start_vel, index))
            active[key] = (ev.tick, ev.velocity)
        elif ev.kind == NOTE_OFF:
            key = (ev.channel, ev.note)
            if key not in active:
                stats["orphan_note_off"] += 1
                continue
            start_tick, start_vel = active.pop(key)
            notes.append(_close(start_tick, ev.tick, key, start_vel, index))

    # Close any hanging notes at end-of-track.
    last_tick = midi.track_end_ticks[index]
    for key, (start_tick, start_vel) in active.items():
        stats["unterminated_notes"] += 1
        notes.append(_close(start_tick, last_tick, key, start_vel, index))
    return notes


def _quantize_notes(notes: list[NoteEvent], grid: int) -> list[NoteEvent]:
    quantized = []
    for n in notes:
        start = int((n.start_tick + grid / 2) // grid) * grid
        end = int((n.end_tick + grid / 2) // grid) * grid
        if end <= start:
            end = start + grid
        quantized.append(replace(n, start_tick=start, end_tick=end))
    return quantized


def _density_score(n: NoteEvent) -> tuple[int, int, int]:
    # Prefer longer notes, then velocity, then higher pitch (melody on top).
    return (n.duration, n.velocity, n.note)


def _limit_density(notes: list[NoteEvent], limit: int) -> tuple[list[NoteEvent], int]:
    if limit <= 0:
        return notes, 0
    by_start: dict[int, list[NoteEvent]] = defaultdict(list)
    for n in notes:
        by_start[n.start_tick].append(n)
    kept: list[NoteEvent] = []
    dropped = 0
    for start in sorted(by_start.keys()):
        group = by_start[start]
        if len(group) <= limit:
            kept.extend(group)
            continue
        group_sorted = sorted(group, key=_density_score, reverse=True)
        kept.extend(group_sorted[:limit])
        dropped += len(group_sorted) - limit
    return kept, dropped


def sort_notes(notes: list[NoteEvent]) -> list[NoteEvent]:
    return sorted(notes, key=lambda n: (n.start_tick, n.track, n.note, n.channel, n.end_tick))


def extract_notes(
    midi: MidiData,
    config: ConvertConfig,
) -> tuple[list[NoteEvent], dict, list[ConversionWarning]]:
    """Pair note events of every track and apply the configured filters.

    Returns the notes ordered by (start tick, track, pitch), a stats dict and
    the recoverable warnings met along the way.
    """
    stats = defaultdict(int)
    warnings: list[ConversionWarning] = []

    notes: list[NoteEvent] = []
    for index in range(len(midi.tracks)):
        notes.extend(_extract_track_notes(midi, index, stats, warnings))
    stats["paired_notes"] = len(notes)

    kept = []
    for n in notes:
        if n.velocity < config.min_velocity:
            stats["dropped_velocity"] += 1
        elif n.channel in config.exclude_channels:
            stats["dropped_channel"] += 1
        else:
            kept.append(n)
    notes = kept

    if config.quantize > 0:
        notes = _quantize_notes(notes, config.quantize)

    notes = sort_notes(notes)
    if config.max_chord > 0:
        notes, dropped = _limit_density(notes, config.max_chord)
        stats["dropped_density"] += dropped
        notes = sort_notes(notes)

    stats["note_count"] = len(notes)
    return notes, dict(stats), warnings

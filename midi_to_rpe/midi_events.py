"""MIDI parsing into absolute-tick events.

Only the event kinds the converter cares about are kept as distinct kinds:
note_on, note_off and set_tempo. Everything else becomes "other"; track names
ride along on those so judge lines can be labelled later.
"""

import heapq
import io
import struct
from collections.abc import Iterator
from dataclasses import dataclass

import mido
from mido.midifiles.meta import KeySignatureError

from midi_to_rpe.errors import MalformedInput, UnsupportedFeature

NOTE_ON = "note_on"
NOTE_OFF = "note_off"
SET_TEMPO = "set_tempo"
OTHER = "other"

DEFAULT_CHART_NAME = "Generated"


@dataclass(frozen=True)
class RawMidiEvent:
    tick: int
    track: int
    kind: str
    note: int = 0
    velocity: int = 0
    channel: int = 0
    tempo: int = 0  # microseconds per quarter note
    text: str = ""


@dataclass(frozen=True)
class MidiData:
    midi_type: int
    ticks_per_beat: int
    tracks: tuple[tuple[RawMidiEvent, ...], ...]
    track_names: tuple[str, ...]
    track_end_ticks: tuple[int, ...]
    track_is_meta: tuple[bool, ...]

    def iter_track(self, index: int) -> Iterator[RawMidiEvent]:
        yield from self.tracks[index]

    def merged_events(self) -> Iterator[RawMidiEvent]:
        """All tracks merged by tick; ties keep track order."""
        return heapq.merge(
            *(self.iter_track(i) for i in range(len(self.tracks))),
            key=lambda ev: (ev.tick, ev.track),
        )


def _convert_message(msg: mido.Message, tick: int, track: int) -> RawMidiEvent:
    if msg.type == "note_on" and msg.velocity > 0:
        return RawMidiEvent(tick, track, NOTE_ON, note=msg.note, velocity=msg.velocity, channel=msg.channel)
    if msg.type in ("note_on", "note_off"):
        # note_on with velocity 0 is a note_off by convention.
        return RawMidiEvent(tick, track, NOTE_OFF, note=msg.note, velocity=msg.velocity, channel=msg.channel)
    if msg.type == "set_tempo":
        return RawMidiEvent(tick, track, SET_TEMPO, tempo=int(msg.tempo))
    if msg.type == "track_name":
        return RawMidiEvent(tick, track, OTHER, text=str(msg.name))
    return RawMidiEvent(tick, track, OTHER, channel=getattr(msg, "channel", 0))


def _track_events(track: mido.MidiTrack, index: int) -> Iterator[RawMidiEvent]:
    tick = 0
    for msg in track:
        tick += msg.time
        yield _convert_message(msg, tick, index)


def parse_midi(data: bytes) -> MidiData:
    try:
        mid = mido.MidiFile(file=io.BytesIO(data))
    except (OSError, EOFError, ValueError, KeyError, IndexError, struct.error, KeySignatureError) as exc:
        raise MalformedInput(f"cannot read MIDI data: {exc}") from exc

    if mid.type not in (0, 1):
        raise UnsupportedFeature(f"unsupported MIDI type {mid.type}; use type 0 or type 1")
    tpb = mid.ticks_per_beat
    # The header division is read signed; SMPTE timing has the top bit set.
    if tpb < 0 or tpb & 0x8000:
        raise UnsupportedFeature("SMPTE time division is not supported; only ticks per beat")
    if tpb == 0:
        raise MalformedInput("ticks per beat is zero")

    tracks = []
    names = []
    end_ticks = []
    meta_flags = []
    for index, track in enumerate(mid.tracks):
        events = tuple(_track_events(track, index))
        tracks.append(events)
        names.append(next((ev.text for ev in events if ev.text), ""))
        end_ticks.append(events[-1].tick if events else 0)
        meta_flags.append(all(msg.is_meta for msg in track))

    return MidiData(
        midi_type=mid.type,
        ticks_per_beat=tpb,
        tracks=tuple(tracks),
        track_names=tuple(names),
        track_end_ticks=tuple(end_ticks),
        track_is_meta=tuple(meta_flags),
    )


def chart_name(midi: MidiData) -> str:
    """Name of the first meta-only track, falling back to a generic name."""
    for name, is_meta in zip(midi.track_names, midi.track_is_meta):
        if is_meta and name:
            return name
    return DEFAULT_CHART_NAME

import io

import mido
import pytest


class MidiBuilder:
    """Builds Standard MIDI File bytes from (absolute tick, message) pairs."""

    @staticmethod
    def note(start: int, end: int, pitch: int, channel: int = 0, velocity: int = 64) -> list:
        return [
            (start, mido.Message("note_on", note=pitch, velocity=velocity, channel=channel)),
            (end, mido.Message("note_off", note=pitch, velocity=0, channel=channel)),
        ]

    @staticmethod
    def note_on(tick: int, pitch: int, channel: int = 0, velocity: int = 64) -> tuple:
        return (tick, mido.Message("note_on", note=pitch, velocity=velocity, channel=channel))

    @staticmethod
    def note_off(tick: int, pitch: int, channel: int = 0) -> tuple:
        return (tick, mido.Message("note_off", note=pitch, velocity=0, channel=channel))

    @staticmethod
    def tempo(tick: int, bpm: float) -> tuple:
        return (tick, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm)))

    @staticmethod
    def name(text: str) -> tuple:
        return (0, mido.MetaMessage("track_name", name=text))

    @staticmethod
    def end(tick: int) -> tuple:
        return (tick, mido.MetaMessage("end_of_track"))

    @staticmethod
    def build(tracks: list[list[tuple]], ticks_per_beat: int = 480, midi_type: int = 1) -> bytes:
        mid = mido.MidiFile(type=midi_type, ticks_per_beat=ticks_per_beat)
        for events in tracks:
            track = mido.MidiTrack()
            last = 0
            # Stable: events sharing a tick keep the order they were given in.
            for tick, msg in sorted(events, key=lambda e: e[0]):
                track.append(msg.copy(time=tick - last))
                last = tick
            mid.tracks.append(track)
        buf = io.BytesIO()
        mid.save(file=buf)
        return buf.getvalue()


@pytest.fixture
def mb():
    return MidiBuilder


@pytest.fixture
def simple_midi(mb):
    """tpq 480, 120 BPM at tick 0, pitch 60 from tick 480 to 960."""
    return mb.build(
        [
            [mb.name("Conductor"), mb.tempo(0, 120)],
            [mb.name("Piano")] + mb.note(480, 960, 60),
        ]
    )


@pytest.fixture
def two_tempo_midi(mb):
    """120 BPM at tick 0, 240 BPM at tick 960, pitch 64 from 1920 to 2400."""
    return mb.build(
        [
            [mb.tempo(0, 120), mb.tempo(960, 240)],
            mb.note(1920, 2400, 64),
        ]
    )

"""Error and warning types raised or collected during a conversion."""


class ConversionError(Exception):
    """Fatal problem: the conversion stops and no chart is produced."""


class MalformedInput(ConversionError):
    pass


class UnsupportedFeature(ConversionError):
    pass


class MissingRequiredField(ConversionError):
    pass


class EmptyTempoData(ConversionError):
    pass


class ConversionWarning(UserWarning):
    """Recoverable anomaly. Collected in a list, never raised."""


class OverlappingNoteOn(ConversionWarning):
    def __init__(self, track: int, channel: int, note: int, start_tick: int, tick: int):
        self.track = track
        self.channel = channel
        self.note = note
        self.start_tick = start_tick
        self.tick = tick
        super().__init__(
            f"track {track}: note {note} ch{channel} re-triggered at tick {tick} "
            f"while open since tick {start_tick}; closed early"
        )

"""MIDI -> RPE chart converter."""

from midi_to_rpe.config import ChartMeta, ConvertConfig
from midi_to_rpe.errors import (
    ConversionError,
    ConversionWarning,
    EmptyTempoData,
    MalformedInput,
    MissingRequiredField,
    OverlappingNoteOn,
    UnsupportedFeature,
)
from midi_to_rpe.midi_to_rpe import ConversionResult, convert

__all__ = [
    "ChartMeta",
    "ConvertConfig",
    "ConversionError",
    "ConversionResult",
    "ConversionWarning",
    "EmptyTempoData",
    "MalformedInput",
    "MissingRequiredField",
    "OverlappingNoteOn",
    "UnsupportedFeature",
    "convert",
]

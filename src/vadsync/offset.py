"""
Offset calculation and subtitle correction module.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .config import SyncBounds
from .errors import EmptySubtitleError, InvalidOffsetError
from .logging import get_logger
from .subtitles import SubtitleCue
from .vad import SpeechSegment


SIGNIFICANT_SPEECH_SECONDS = 0.1;
BASE_CONFIDENCE = 0.6;
MAX_CONFIDENCE = 0.95;
FAST_PROCESSING_SECONDS = 2.0;


@dataclass( frozen=True )
class OffsetDecision:
    """
    Outcome of comparing detected speech with the first cue.

    ``unavailable`` means no speech was found and no shift may be applied;
    it is distinct from a valid offset of 0.0. ``confidence`` is 1.0 for a
    caller-supplied offset and 0.0 when the offset is unavailable.
    """

    offset_seconds: Optional[float];
    raw_offset_seconds: Optional[float];
    clamped: bool = False;
    unavailable: bool = False;
    confidence: float = 1.0;

    @classmethod
    def not_available( cls ) -> "OffsetDecision":
        return cls( offset_seconds=None, raw_offset_seconds=None, clamped=False, unavailable=True, confidence=0.0 );


def clamp_offset( raw_offset: float, bounds: SyncBounds ) -> Tuple[float, bool]:
    """
    Restrict an offset to +/- max_offset_seconds.

    Returns:
        Tuple of (offset, clamped)
    """
    limit = bounds.max_offset_seconds;
    if abs( raw_offset ) > limit:
        return ( limit if raw_offset > 0 else -limit ), True;
    return raw_offset, False;


def find_first_significant_speech( segments: Sequence[SpeechSegment], min_duration: float = SIGNIFICANT_SPEECH_SECONDS ) -> SpeechSegment:
    """First segment lasting at least min_duration, else the first segment."""
    if not segments:
        raise ValueError( "No speech segments to choose from" );
    for segment in segments:
        if segment.duration >= min_duration:
            return segment;
    return segments[0];


def calculate_confidence( segments: Sequence[SpeechSegment], processing_seconds: float ) -> float:
    """
    Heuristic confidence of a detected offset, between 0.0 and 0.95.

    Starts at 0.6 and grows with the number of segments, the length of the
    first segment and a fast run. No speech means 0.0.
    """
    if not segments:
        return 0.0;

    confidence = BASE_CONFIDENCE;
    if len( segments ) >= 1:
        confidence += 0.1;
    if len( segments ) >= 3:
        confidence += 0.1;

    first = segments[0];
    if first.duration >= 0.5:
        confidence += 0.1;
    if first.duration >= 1.0:
        confidence += 0.05;

    if processing_seconds < FAST_PROCESSING_SECONDS:
        confidence += 0.05;

    return min( confidence, MAX_CONFIDENCE );


def first_cue_start( cues: Sequence[SubtitleCue] ) -> float:
    """Start time of the first cue in subtitle order."""
    if not cues:
        raise EmptySubtitleError( "No subtitle entries found" );
    return cues[0].start;


class SyncOffsetCalculator:
    """
    Derive a single additive offset from detected speech and the first cue.

    Offset = first significant speech start - first cue start
    (the first segment of at least 0.1 s, else the first segment).
    Positive offset means the subtitles are early and get delayed.
    """

    def __init__( self, bounds: SyncBounds ):
        self.logger = get_logger();
        self.bounds = bounds;

    def calculate( self, segments: Sequence[SpeechSegment], first_cue: float, processing_seconds: float = 0.0 ) -> OffsetDecision:
        """
        Offset from the first significant speech segment to the first cue.

        Args:
            segments: Detected speech, ascending
            first_cue: Start of the first subtitle cue in seconds
            processing_seconds: Time spent so far, feeds the confidence score
        """
        if not segments:
            self.logger.debug( "No speech segments, offset unavailable" );
            return OffsetDecision.not_available();

        speech = find_first_significant_speech( segments );
        raw = speech.start_seconds - first_cue;
        return self.bound( raw, confidence=calculate_confidence( segments, processing_seconds ) );

    def bound( self, raw_offset: float, confidence: float = 1.0 ) -> OffsetDecision:
        """Apply the clamp-and-flag policy to a raw offset."""
        offset, clamped = clamp_offset( raw_offset, self.bounds );
        if clamped:
            self.logger.debug( f"Offset {raw_offset:.3f}s clamped to {offset:.3f}s " \
                               f"(max {self.bounds.max_offset_seconds:.1f}s)" );
        return OffsetDecision( offset_seconds=offset, raw_offset_seconds=raw_offset, clamped=clamped, confidence=confidence );


def apply_offset( cues: Sequence[SubtitleCue], offset_seconds: float ) -> Tuple[SubtitleCue, ...]:
    """
    Translate every cue by the same offset.

    The input sequence is left untouched; order and spacing are preserved.

    Raises:
        InvalidOffsetError: A shifted cue would start before 0
    """
    shifted = tuple( cue.shifted( offset_seconds ) for cue in cues );
    for original, cue in zip( cues, shifted ):
        if cue.start < 0:
            raise InvalidOffsetError(
                f"Offset {offset_seconds:.3f}s moves cue {original.index} " \
                f"({original.start:.3f}s) before the start of the timeline"
            );
    return shifted;

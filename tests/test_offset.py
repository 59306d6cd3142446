"""
Test cases for offset calculation, clamping and cue correction.
"""
import sys
from pathlib import Path

import pytest

# Add src directory to path for testing
sys.path.insert( 0, str( Path( __file__ ).parent.parent / "src" ) );

from vadsync.config import SyncBounds
from vadsync.errors import EmptySubtitleError, InvalidOffsetError
from vadsync.offset import (
    OffsetDecision, SyncOffsetCalculator, apply_offset, calculate_confidence, clamp_offset,
    find_first_significant_speech, first_cue_start
);
from vadsync.subtitles import SubtitleCue
from vadsync.vad import SpeechSegment


def _cues( *spans ):
    return [ SubtitleCue( start=start, end=end, text=f"Line {i}", index=i ) for i, ( start, end ) in enumerate( spans, start=1 ) ];


class TestClampOffset:
    """Test the clamp-and-flag offset policy."""

    @pytest.mark.parametrize( "raw, expected, clamped", [
        ( 75.0, 60.0, True ),
        ( -75.0, -60.0, True ),
        ( 10.0, 10.0, False ),
        ( 60.0, 60.0, False ),
        ( -60.0, -60.0, False ),
        ( 0.0, 0.0, False ),
    ] )
    def test_clamp( self, raw, expected, clamped ):
        assert clamp_offset( raw, SyncBounds() ) == ( expected, clamped );

    def test_custom_bound( self ):
        assert clamp_offset( -4.5, SyncBounds( max_offset_seconds=2.0 ) ) == ( -2.0, True );


class TestSyncOffsetCalculator:
    """Test offset derivation from the first speech segment."""

    def setup_method( self ):
        self.calculator = SyncOffsetCalculator( SyncBounds() );

    def test_no_speech_means_unavailable( self ):
        decision = self.calculator.calculate( [], 1.0 );

        assert decision.unavailable;
        assert decision.offset_seconds is None;
        assert decision.raw_offset_seconds is None;
        assert decision == OffsetDecision.not_available();

    def test_zero_offset_is_not_unavailable( self ):
        decision = self.calculator.calculate( [ SpeechSegment( 1.0, 2.0 ) ], 1.0 );

        assert not decision.unavailable;
        assert decision.offset_seconds == 0.0;

    def test_offset_from_first_segment( self ):
        segments = [ SpeechSegment( 2.5, 4.0 ), SpeechSegment( 6.0, 7.0 ) ];
        decision = self.calculator.calculate( segments, 0.0 );

        assert decision.offset_seconds == pytest.approx( 2.5 );
        assert not decision.clamped;

    def test_negative_offset( self ):
        decision = self.calculator.calculate( [ SpeechSegment( 1.0, 2.0 ) ], 4.0 );
        assert decision.offset_seconds == pytest.approx( -3.0 );

    def test_large_offset_is_clamped_and_flagged( self ):
        decision = self.calculator.calculate( [ SpeechSegment( 80.0, 81.0 ) ], 5.0 );

        assert decision.clamped;
        assert decision.offset_seconds == 60.0;
        assert decision.raw_offset_seconds == pytest.approx( 75.0 );

    def test_skips_insignificant_first_segment( self ):
        segments = [ SpeechSegment( 1.0, 1.05 ), SpeechSegment( 2.0, 3.0 ) ];
        decision = self.calculator.calculate( segments, 0.0 );
        assert decision.offset_seconds == pytest.approx( 2.0 );

    def test_manual_bound_has_full_confidence( self ):
        assert self.calculator.bound( 4.0 ).confidence == 1.0;

    def test_first_cue_start( self ):
        assert first_cue_start( _cues( ( 3.0, 4.0 ), ( 1.0, 2.0 ) ) ) == 3.0;
        with pytest.raises( EmptySubtitleError ):
            first_cue_start( [] );


class TestConfidence:
    """Test speech selection and the confidence heuristic."""

    def test_first_significant_speech( self ):
        short = SpeechSegment( 0.5, 0.55 );
        long = SpeechSegment( 1.0, 2.0 );
        assert find_first_significant_speech( [ short, long ] ) == long;
        assert find_first_significant_speech( [ short, SpeechSegment( 1.0, 1.02 ) ] ) == short;
        with pytest.raises( ValueError ):
            find_first_significant_speech( [] );

    def test_no_speech_is_zero( self ):
        assert calculate_confidence( [], 0.1 ) == 0.0;

    @pytest.mark.parametrize( "duration, processing, expected", [
        ( 0.3, 5.0, 0.7 ),
        ( 0.6, 5.0, 0.8 ),
        ( 1.2, 5.0, 0.85 ),
        ( 0.3, 0.5, 0.75 ),
        ( 1.2, 0.5, 0.9 ),
    ] )
    def test_single_segment_increments( self, duration, processing, expected ):
        segments = [ SpeechSegment( 1.0, 1.0 + duration ) ];
        assert calculate_confidence( segments, processing ) == pytest.approx( expected );

    def test_three_segments( self ):
        segments = [ SpeechSegment( 1.0, 1.3 ), SpeechSegment( 2.0, 2.3 ), SpeechSegment( 3.0, 3.3 ) ];
        assert calculate_confidence( segments, 5.0 ) == pytest.approx( 0.8 );

    def test_capped( self ):
        segments = [ SpeechSegment( 1.0, 2.5 ), SpeechSegment( 3.0, 4.0 ), SpeechSegment( 5.0, 6.0 ) ];
        assert calculate_confidence( segments, 0.1 ) == 0.95;

    def test_calculated_decision_carries_confidence( self ):
        decision = SyncOffsetCalculator( SyncBounds() ).calculate( [ SpeechSegment( 2.0, 3.5 ) ], 1.0, 0.2 );
        assert decision.confidence == pytest.approx( 0.9 );
        assert OffsetDecision.not_available().confidence == 0.0;


class TestApplyOffset:
    """Test cue translation."""

    def test_shifts_every_cue( self ):
        cues = _cues( ( 0.0, 1.0 ), ( 2.0, 3.5 ) );
        shifted = apply_offset( cues, 2.5 );

        assert [ ( c.start, c.end ) for c in shifted ] == [ ( 2.5, 3.5 ), ( 4.5, 6.0 ) ];
        assert [ c.text for c in shifted ] == [ "Line 1", "Line 2" ];
        assert [ c.index for c in shifted ] == [ 1, 2 ];

    def test_original_cues_untouched( self ):
        cues = _cues( ( 0.0, 1.0 ), ( 2.0, 3.5 ) );
        apply_offset( cues, 2.5 );
        assert [ ( c.start, c.end ) for c in cues ] == [ ( 0.0, 1.0 ), ( 2.0, 3.5 ) ];

    def test_spacing_preserved( self ):
        cues = _cues( ( 10.0, 11.0 ), ( 12.25, 13.0 ), ( 20.0, 21.5 ) );
        shifted = apply_offset( cues, -3.0 );

        for before, after in zip( zip( cues, cues[1:] ), zip( shifted, shifted[1:] ) ):
            assert after[1].start - after[0].start == pytest.approx( before[1].start - before[0].start );
            assert after[0].end - after[0].start == pytest.approx( before[0].end - before[0].start );

    def test_zero_offset_is_identity( self ):
        cues = _cues( ( 1.0, 2.0 ) );
        assert apply_offset( cues, 0.0 ) == tuple( cues );

    def test_negative_start_rejected( self ):
        with pytest.raises( InvalidOffsetError ):
            apply_offset( _cues( ( 1.0, 2.0 ), ( 5.0, 6.0 ) ), -1.5 );

    def test_empty_cues( self ):
        assert apply_offset( [], 5.0 ) == ();


if __name__ == '__main__':
    pytest.main( [ __file__ ] );

"""
Speech activity detection over a mono PCM buffer.

The buffer is cut into chunks of roughly 62.5 ms, every chunk is scored by an
activity model, and the speech chunks are padded, filtered and merged into an
ascending list of non-overlapping SpeechSegment intervals.
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import numpy as np
import webrtcvad

from .audio import PcmBuffer
from .config import VadTuning
from .deadline import Deadline
from .errors import VadInitFailure
from .logging import get_logger


CHUNKS_PER_SECOND = 16;
MIN_CHUNK_SIZE = 1024;
FULL_SCALE = 32768.0;


def chunk_size( sample_rate: int ) -> int:
    """Samples per classification chunk: max(sample_rate / 16, 1024)."""
    if sample_rate <= 0:
        raise ValueError( f"Sample rate must be positive, got {sample_rate}" );
    return max( sample_rate // CHUNKS_PER_SECOND, MIN_CHUNK_SIZE );


@dataclass( frozen=True, order=True )
class SpeechSegment:
    """A padded, merged interval of detected speech, in seconds."""

    start_seconds: float;
    end_seconds: float;

    def __post_init__( self ):
        if not self.start_seconds < self.end_seconds:
            raise ValueError( f"Segment start {self.start_seconds} must be before end {self.end_seconds}" );

    @property
    def duration( self ) -> float:
        return self.end_seconds - self.start_seconds;

    def __repr__( self ):
        return f"SpeechSegment({self.start_seconds:.3f}s-{self.end_seconds:.3f}s)";


class EnergySpeechModel:
    """
    Loudness-based activity model usable at any sample rate.

    The chunk RMS level is mapped linearly from floor_db (score 0.0) to
    ceiling_db (score 1.0), both in dBFS.
    """

    name = "energy";

    def __init__( self, sample_rate: int, floor_db: float = -60.0, ceiling_db: float = -20.0 ):
        if sample_rate <= 0:
            raise VadInitFailure( f"Energy model needs a positive sample rate, got {sample_rate}" );
        if ceiling_db <= floor_db:
            raise VadInitFailure( "Energy model ceiling must be above its floor" );
        self.sample_rate = sample_rate;
        self.floor_db = floor_db;
        self.ceiling_db = ceiling_db;

    def score( self, chunk: np.ndarray ) -> float:
        if chunk.size == 0:
            return 0.0;
        rms = math.sqrt( float( np.mean( np.square( chunk.astype( np.float64 ) ) ) ) );
        if rms <= 0.0:
            return 0.0;
        level_db = 20.0 * math.log10( rms / FULL_SCALE );
        scaled = ( level_db - self.floor_db ) / ( self.ceiling_db - self.floor_db );
        return min( 1.0, max( 0.0, scaled ) );


class WebRtcSpeechModel:
    """
    WebRTC VAD model; the chunk score is the fraction of 30 ms frames voiced.

    Only the sample rates WebRTC VAD itself accepts can be used.
    """

    name = "webrtc";
    SUPPORTED_RATES = ( 8000, 16000, 32000, 48000 );

    def __init__( self, sample_rate: int, aggressiveness: int = 2, frame_ms: int = 30 ):
        if sample_rate not in self.SUPPORTED_RATES:
            raise VadInitFailure( f"WebRTC VAD does not support {sample_rate}Hz " \
                                  f"(supported: {', '.join( str( r ) for r in self.SUPPORTED_RATES )})" );
        if frame_ms not in ( 10, 20, 30 ):
            raise VadInitFailure( f"WebRTC VAD frames must be 10, 20 or 30 ms, got {frame_ms}" );
        try:
            self._vad = webrtcvad.Vad( min( max( aggressiveness, 0 ), 3 ) );
        except Exception as e:
            raise VadInitFailure( f"Failed to create WebRTC VAD: {e}" ) from e;
        self.sample_rate = sample_rate;
        self.frame_len = sample_rate * frame_ms // 1000;

    def score( self, chunk: np.ndarray ) -> float:
        frames = chunk.size // self.frame_len;
        if frames == 0:
            return 0.0;
        voiced = 0;
        for i in range( frames ):
            frame = chunk[i * self.frame_len:( i + 1 ) * self.frame_len];
            if self._vad.is_speech( frame.astype( "<i2" ).tobytes(), self.sample_rate ):
                voiced += 1;
        return voiced / frames;


def build_model( tuning: VadTuning, sample_rate: int ):
    """Construct the activity model named by the tuning for a sample rate."""
    if tuning.backend == "webrtc":
        return WebRtcSpeechModel( sample_rate );
    return EnergySpeechModel( sample_rate );


def find_runs( flags: Sequence[bool] ) -> List[Tuple[int, int]]:
    """Half-open [start, end) chunk index ranges of consecutive True flags."""
    runs = [];
    start = None;
    for index, flag in enumerate( flags ):
        if flag and start is None:
            start = index;
        elif not flag and start is not None:
            runs.append( ( start, index ) );
            start = None;
    if start is not None:
        runs.append( ( start, len( flags ) ) );
    return runs;


def pad_runs( runs: List[Tuple[int, int]], padding: int, total_chunks: int ) -> List[Tuple[int, int]]:
    """Extend every run by ``padding`` chunks on both sides and unite runs that then touch."""
    padded = [];
    for start, end in runs:
        start = max( 0, start - padding );
        end = min( total_chunks, end + padding );
        if padded and start <= padded[-1][1]:
            padded[-1] = ( padded[-1][0], max( padded[-1][1], end ) );
        else:
            padded.append( ( start, end ) );
    return padded;


def merge_segments( segments: Sequence[SpeechSegment], gap_seconds: float ) -> List[SpeechSegment]:
    """
    Merge segments whose gap to the previous one is shorter than gap_seconds.

    Overlapping segments are always merged. The result is sorted and is a fixed
    point: merging it again with the same gap returns an equal list.
    """
    merged: List[SpeechSegment] = [];
    for segment in sorted( segments ):
        if merged and segment.start_seconds - merged[-1].end_seconds < max( gap_seconds, 0.0 ):
            last = merged[-1];
            merged[-1] = SpeechSegment( last.start_seconds, max( last.end_seconds, segment.end_seconds ) );
        else:
            merged.append( segment );
    return merged;


class SpeechActivityDetector:
    """
    Turns a PcmBuffer into a clean list of speech intervals.

    Steps:
    1. Chunk the buffer (chunk_size samples, last partial chunk included)
    2. Score each chunk; speech when score > 1 - sensitivity
    3. Pad speech runs by padding_chunks on both sides
    4. Drop runs shorter than min_speech_duration_ms
    5. Merge runs separated by less than speech_merge_gap_ms
    """

    def __init__( self, tuning: VadTuning ):
        self.logger = get_logger();
        self.tuning = tuning;

    def classify_chunks( self, buffer: PcmBuffer, model, size: int, deadline: Optional[Deadline] = None ) -> List[bool]:
        threshold = self.tuning.threshold;
        samples = buffer.samples;
        flags = [];
        for start in range( 0, buffer.total_samples, size ):
            if deadline is not None:
                deadline.check( "Detecting" );
            flags.append( model.score( samples[start:start + size] ) > threshold );
        return flags;

    def detect( self, buffer: PcmBuffer, deadline: Optional[Deadline] = None ) -> List[SpeechSegment]:
        """
        Detect speech segments in a mono PCM buffer.

        Args:
            buffer: Mono PCM samples at their native rate
            deadline: Optional per-request deadline, checked between chunks

        Returns:
            Ascending, non-overlapping SpeechSegment list (empty when no speech)

        Raises:
            VadInitFailure: Model cannot be built for the buffer's sample rate
            SyncTimeout: Deadline expired
        """
        sample_rate = buffer.sample_rate;
        if sample_rate <= 0:
            raise VadInitFailure( f"Cannot run VAD at sample rate {sample_rate}" );

        size = chunk_size( sample_rate );
        model = build_model( self.tuning, sample_rate );
        self.logger.debug( f"VAD: model={model.name}, chunk_size={size}, sample_rate={sample_rate}, " \
                           f"threshold={self.tuning.threshold:.2f}" );

        flags = self.classify_chunks( buffer, model, size, deadline );
        runs = pad_runs( find_runs( flags ), self.tuning.padding_chunks, len( flags ) );

        total = buffer.total_samples;
        min_ms = self.tuning.min_speech_duration_ms;
        segments = [];
        for start, end in runs:
            start_sample = start * size;
            end_sample = min( end * size, total );
            # compare in samples so the cut-off is exact
            if ( end_sample - start_sample ) * 1000 < min_ms * sample_rate:
                self.logger.debug( f"Discarded short run: chunks {start}-{end}" );
                continue;
            segments.append( SpeechSegment( start_sample / sample_rate, end_sample / sample_rate ) );

        merged = merge_segments( segments, self.tuning.speech_merge_gap_ms / 1000.0 );
        self.logger.debug( f"VAD: {sum( flags )}/{len( flags )} speech chunks, " \
                           f"{len( runs )} padded runs, {len( merged )} segments" );
        return merged;

"""
Synchronization engine that runs one audio file + subtitle pair through the pipeline.

Vad method:    Idle -> Transcoding -> Detecting -> Calculating -> Applying -> Done
Manual method: Idle -> Applying -> Done
Any failure moves the run to Aborted and re-raises the original error.
"""
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .audio import AudioInfo, AudioTranscoder
from .config import SyncBounds, VadTuning
from .deadline import Deadline
from .errors import AudioIOError, SyncError, VadDisabledError
from .logging import get_logger
from .offset import OffsetDecision, SyncOffsetCalculator, apply_offset, first_cue_start
from .subtitles import SubtitleCue
from .vad import SpeechActivityDetector, SpeechSegment


class SyncState( Enum ):
    IDLE = "idle";
    TRANSCODING = "transcoding";
    DETECTING = "detecting";
    CALCULATING = "calculating";
    APPLYING = "applying";
    DONE = "done";
    ABORTED = "aborted";


class SyncStatus( Enum ):
    OK = "ok";
    CLAMPED = "clamped";
    OFFSET_UNAVAILABLE = "offset_unavailable";


@dataclass( frozen=True )
class VadMethod:
    """Detect the offset from speech activity in the audio."""

    name = "vad";


@dataclass( frozen=True )
class ManualMethod:
    """Apply a caller-supplied offset, still subject to the offset bounds."""

    offset_seconds: float;
    name = "manual";


SyncMethod = Union[VadMethod, ManualMethod];


@dataclass( frozen=True )
class SyncResult:
    """Corrected cue timeline plus diagnostics for one synchronization call."""

    method: str;
    status: SyncStatus;
    offset_seconds: Optional[float];
    raw_offset_seconds: Optional[float];
    clamped: bool;
    speech_segments: Tuple[SpeechSegment, ...];
    cues: Tuple[SubtitleCue, ...];
    processing_duration: float;
    audio_info: Optional[AudioInfo] = None;
    confidence: float = 0.0;
    states: Tuple[SyncState, ...] = ();

    @property
    def offset_unavailable( self ) -> bool:
        return self.status is SyncStatus.OFFSET_UNAVAILABLE;

    @property
    def speech_segment_count( self ) -> int:
        return len( self.speech_segments );

    @property
    def sample_rate( self ) -> Optional[int]:
        return self.audio_info.sample_rate if self.audio_info else None;

    def to_dict( self ) -> dict:
        """Plain-data view for reporting."""
        return {
            'method': self.method,
            'status': self.status.value,
            'offset_seconds': self.offset_seconds,
            'raw_offset_seconds': self.raw_offset_seconds,
            'clamped': self.clamped,
            'confidence': round( self.confidence, 3 ),
            'speech_segments_count': self.speech_segment_count,
            'first_speech_start': self.speech_segments[0].start_seconds if self.speech_segments else None,
            'sample_rate': self.sample_rate,
            'audio_duration': self.audio_info.duration_seconds if self.audio_info else None,
            'cues': len( self.cues ),
            'processing_time_ms': int( self.processing_duration * 1000 ),
            'states': [ state.value for state in self.states ]
        };


class _Run:
    """Tracks the state transitions of one synchronize() call."""

    def __init__( self ):
        self.states: List[SyncState] = [ SyncState.IDLE ];

    @property
    def current( self ) -> SyncState:
        return self.states[-1];

    @contextmanager
    def stage( self, state: SyncState ):
        self.states.append( state );
        try:
            yield;
        except Exception as e:
            self.abort( e, state );
            raise;

    def abort( self, error: Exception, state: SyncState ):
        if isinstance( error, SyncError ) and error.stage is None:
            error.stage = state;
        self.states.append( SyncState.ABORTED );

    def finish( self ):
        self.states.append( SyncState.DONE );


class SyncEngine:
    """
    Orchestrates transcoding, detection, offset calculation and cue correction.

    The engine holds only immutable configuration, so one instance can serve
    concurrent requests; every call owns its own PCM buffer.
    """

    def __init__(
        self,
        tuning: VadTuning,
        bounds: SyncBounds,
        timeout_seconds: Optional[float] = None,
        transcoder: Optional[AudioTranscoder] = None
    ):
        self.logger = get_logger();
        self.tuning = tuning;
        self.bounds = bounds;
        self.timeout_seconds = timeout_seconds;
        self.transcoder = transcoder if transcoder is not None else AudioTranscoder();

    def synchronize( self, audio_path: Optional[Path], cues: Sequence[SubtitleCue], method: SyncMethod ) -> SyncResult:
        """
        Compute and apply the subtitle offset for one audio/subtitle pair.

        Args:
            audio_path: Media file (unused by the manual method)
            cues: Subtitle cues in order; never modified
            method: VadMethod() or ManualMethod(offset_seconds)

        Returns:
            SyncResult with the corrected cues

        Raises:
            SyncError subclasses, with ``stage`` set to the failing state
        """
        started = time.perf_counter();
        run = _Run();
        cues = tuple( cues );

        if isinstance( method, ManualMethod ):
            segments, audio_info, decision, corrected = self._run_manual( run, cues, method );
        elif isinstance( method, VadMethod ):
            segments, audio_info, decision, corrected = self._run_vad( run, audio_path, cues, started );
        else:
            raise TypeError( f"Unknown sync method: {method!r}" );

        run.finish();

        if decision.unavailable:
            status = SyncStatus.OFFSET_UNAVAILABLE;
        elif decision.clamped:
            status = SyncStatus.CLAMPED;
        else:
            status = SyncStatus.OK;

        return SyncResult(
            method=method.name,
            status=status,
            offset_seconds=decision.offset_seconds,
            raw_offset_seconds=decision.raw_offset_seconds,
            clamped=decision.clamped,
            speech_segments=tuple( segments ),
            cues=corrected,
            processing_duration=time.perf_counter() - started,
            audio_info=audio_info,
            confidence=decision.confidence,
            states=tuple( run.states )
        );

    def _run_manual( self, run: _Run, cues: Tuple[SubtitleCue, ...], method: ManualMethod ):
        calculator = SyncOffsetCalculator( self.bounds );
        with run.stage( SyncState.APPLYING ):
            decision = calculator.bound( float( method.offset_seconds ) );
            corrected = apply_offset( cues, decision.offset_seconds );
        return (), None, decision, corrected;

    def _run_vad( self, run: _Run, audio_path: Optional[Path], cues: Tuple[SubtitleCue, ...], started: float ):
        try:
            if not self.tuning.enabled:
                raise VadDisabledError( "VAD is disabled; use the manual method with an explicit offset" );
            if audio_path is None:
                raise AudioIOError( "The vad method needs a media file" );
            audio_path = Path( audio_path );
            first_cue = first_cue_start( cues );
        except SyncError as e:
            run.abort( e, SyncState.IDLE );
            raise;

        deadline = Deadline( self.timeout_seconds );

        with run.stage( SyncState.TRANSCODING ):
            buffer = self.transcoder.decode_to_pcm( audio_path, deadline );
        audio_info = buffer.info();

        with run.stage( SyncState.DETECTING ):
            segments = SpeechActivityDetector( self.tuning ).detect( buffer, deadline );
        del buffer;

        with run.stage( SyncState.CALCULATING ):
            decision = SyncOffsetCalculator( self.bounds ).calculate( segments, first_cue, time.perf_counter() - started );

        with run.stage( SyncState.APPLYING ):
            corrected = cues if decision.unavailable else apply_offset( cues, decision.offset_seconds );

        self.logger.debug( f"{audio_path.name}: {len( segments )} speech segments, " \
                           f"offset={decision.offset_seconds}, clamped={decision.clamped}, confidence={decision.confidence:.2f}" );
        return segments, audio_info, decision, corrected;


def synchronize(
    audio_path: Optional[Path],
    cues: Sequence[SubtitleCue],
    method: SyncMethod,
    tuning: VadTuning,
    bounds: SyncBounds,
    timeout_seconds: Optional[float] = None
) -> SyncResult:
    """Single entry point: synchronize one audio file and subtitle."""
    return SyncEngine( tuning, bounds, timeout_seconds=timeout_seconds ).synchronize( audio_path, cues, method );


@dataclass( frozen=True )
class SyncJob:
    """One audio/subtitle pair in a batch."""

    audio_path: Optional[Path];
    cues: Tuple[SubtitleCue, ...];
    method: SyncMethod = field( default_factory=VadMethod );
    label: Optional[str] = None;


@dataclass( frozen=True )
class BatchOutcome:
    job: SyncJob;
    result: Optional[SyncResult] = None;
    error: Optional[Exception] = None;

    @property
    def ok( self ) -> bool:
        return self.error is None;


def synchronize_batch(
    jobs: Sequence[SyncJob],
    tuning: VadTuning,
    bounds: SyncBounds,
    max_workers: int = 4,
    timeout_seconds: Optional[float] = None,
    engine: Optional[SyncEngine] = None
) -> List[BatchOutcome]:
    """
    Run independent requests on a bounded thread pool.

    Returns:
        One BatchOutcome per job, in input order. A failing job records its
        error and never affects the others.
    """
    if max_workers < 1:
        raise ValueError( f"max_workers must be at least 1, got {max_workers}" );

    engine = engine or SyncEngine( tuning, bounds, timeout_seconds=timeout_seconds );
    outcomes = [];
    with ThreadPoolExecutor( max_workers=max_workers ) as pool:
        futures = [ pool.submit( engine.synchronize, job.audio_path, job.cues, job.method ) for job in jobs ];
        for job, future in zip( jobs, futures ):
            try:
                outcomes.append( BatchOutcome( job=job, result=future.result() ) );
            except Exception as e:
                engine.logger.debug( f"Batch job {job.label or job.audio_path} failed: {e}" );
                outcomes.append( BatchOutcome( job=job, error=e ) );
    return outcomes;

"""
Configuration values for the synchronization pipeline.

VadTuning and SyncBounds are immutable value objects validated on construction.
load_settings() reads them from a .env file and VADSYNC_* environment variables;
the pipeline itself only ever receives the value objects.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from .errors import ConfigError


VAD_BACKENDS = ( "energy", "webrtc" );

MAX_PADDING_CHUNKS = 10;
MAX_MIN_SPEECH_DURATION_MS = 5000;
MAX_SPEECH_MERGE_GAP_MS = 2000;


@dataclass( frozen=True )
class VadTuning:
    """
    Voice activity detection parameters.

    sensitivity: 0.0-1.0, a chunk is speech when its score exceeds 1 - sensitivity
    padding_chunks: chunks added on both sides of every speech run
    min_speech_duration_ms: padded runs shorter than this are dropped
    speech_merge_gap_ms: runs closer than this are merged
    backend: activity model, "energy" (any sample rate) or "webrtc"
    """

    enabled: bool = True;
    sensitivity: float = 0.25;
    padding_chunks: int = 3;
    min_speech_duration_ms: int = 300;
    speech_merge_gap_ms: int = 200;
    backend: str = "energy";

    def __post_init__( self ):
        if not ( 0.0 <= self.sensitivity <= 1.0 ):
            raise ConfigError( f"sensitivity must be between 0.0 and 1.0, got {self.sensitivity}" );
        _check_int_range( "padding_chunks", self.padding_chunks, MAX_PADDING_CHUNKS );
        _check_int_range( "min_speech_duration_ms", self.min_speech_duration_ms, MAX_MIN_SPEECH_DURATION_MS );
        _check_int_range( "speech_merge_gap_ms", self.speech_merge_gap_ms, MAX_SPEECH_MERGE_GAP_MS );
        if self.backend not in VAD_BACKENDS:
            raise ConfigError( f"Unknown VAD backend '{self.backend}', expected one of {', '.join( VAD_BACKENDS )}" );

    @property
    def threshold( self ) -> float:
        """Score a chunk has to exceed to count as speech."""
        return 1.0 - self.sensitivity;


@dataclass( frozen=True )
class SyncBounds:
    """Caps the magnitude of any applied correction."""

    max_offset_seconds: float = 60.0;

    def __post_init__( self ):
        if not self.max_offset_seconds > 0:
            raise ConfigError( f"max_offset_seconds must be positive, got {self.max_offset_seconds}" );


@dataclass( frozen=True )
class Settings:
    """Everything the configuration layer hands to the engine."""

    tuning: VadTuning = field( default_factory=VadTuning );
    bounds: SyncBounds = field( default_factory=SyncBounds );
    timeout_seconds: Optional[float] = None;


def _check_int_range( name: str, value: int, maximum: int ):
    if isinstance( value, bool ) or not isinstance( value, int ):
        raise ConfigError( f"{name} must be an integer, got {value!r}" );
    if value < 0 or value > maximum:
        raise ConfigError( f"{name} must be between 0 and {maximum}, got {value}" );


def _env_bool( name: str, default: bool ) -> bool:
    value = os.getenv( name );
    if value is None or value.strip() == "":
        return default;
    lowered = value.strip().lower();
    if lowered in ( "1", "true", "yes", "on" ):
        return True;
    if lowered in ( "0", "false", "no", "off" ):
        return False;
    raise ConfigError( f"{name} must be a boolean, got '{value}'" );


def _env_number( name: str, default, cast ):
    value = os.getenv( name );
    if value is None or value.strip() == "":
        return default;
    try:
        return cast( value.strip() );
    except ValueError as e:
        raise ConfigError( f"{name} is not a valid number: '{value}'" ) from e;


def load_settings( env_file: Optional[Path] = None ) -> Settings:
    """
    Load settings from a .env file and the process environment.

    Args:
        env_file: Optional .env path (defaults to ./.env when present)

    Returns:
        Validated Settings

    Raises:
        ConfigError: If a value is malformed or out of range
    """
    env_path = Path( env_file ) if env_file else Path( ".env" );
    if env_path.exists():
        load_dotenv( env_path );

    defaults = VadTuning();
    tuning = VadTuning(
        enabled=_env_bool( "VADSYNC_VAD_ENABLED", defaults.enabled ),
        sensitivity=_env_number( "VADSYNC_VAD_SENSITIVITY", defaults.sensitivity, float ),
        padding_chunks=_env_number( "VADSYNC_VAD_PADDING_CHUNKS", defaults.padding_chunks, int ),
        min_speech_duration_ms=_env_number( "VADSYNC_VAD_MIN_SPEECH_MS", defaults.min_speech_duration_ms, int ),
        speech_merge_gap_ms=_env_number( "VADSYNC_VAD_MERGE_GAP_MS", defaults.speech_merge_gap_ms, int ),
        backend=os.getenv( "VADSYNC_VAD_BACKEND" ) or defaults.backend
    );
    bounds = SyncBounds(
        max_offset_seconds=_env_number( "VADSYNC_MAX_OFFSET_SECONDS", SyncBounds().max_offset_seconds, float )
    );
    timeout = _env_number( "VADSYNC_TIMEOUT_SECONDS", None, float );
    if timeout is not None and timeout <= 0:
        raise ConfigError( f"VADSYNC_TIMEOUT_SECONDS must be positive, got {timeout}" );

    return Settings( tuning=tuning, bounds=bounds, timeout_seconds=timeout );

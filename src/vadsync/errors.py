"""
Error taxonomy for the synchronization pipeline.

Every fatal condition is raised as a subclass of SyncError. The pipeline stage
that was running when the error surfaced is recorded on ``stage`` by the engine.
Unavailable and clamped offsets are result states, not exceptions.
"""


class SyncError( Exception ):
    """Base error for a single synchronization request."""

    def __init__( self, message: str = "", stage=None ):
        super().__init__( message );
        self.stage = stage;


class FormatUnsupported( SyncError ):
    """Container or codec outside the supported set."""


class NoAudioTrack( SyncError ):
    """Container holds no audio stream."""


class DecodeError( SyncError ):
    """Mid-stream decode failure; no partial buffer is returned."""


class VadInitFailure( SyncError ):
    """Activity-detection model cannot be built for the sample rate."""


class AudioIOError( SyncError ):
    """File read or temporary-file failure."""


class SyncTimeout( SyncError ):
    """Per-request deadline expired during transcoding or detection."""


class InvalidOffsetError( SyncError ):
    """Offset would move a cue before the start of the timeline."""


class EmptySubtitleError( SyncError, ValueError ):
    """Subtitle has no cues to align."""


class VadDisabledError( SyncError ):
    """VAD method requested while detection is disabled in the tuning."""


class ConfigError( SyncError, ValueError ):
    """Tuning or bounds value outside its allowed range."""

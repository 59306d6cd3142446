"""
Audio transcoding module: decode any supported container/codec to mono PCM.

The first channel of the first supported audio stream is kept at the source's
native sample rate. Nothing is resampled or down-mixed.
"""
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple
import ffmpeg
import numpy as np
import soundfile as sf

from .deadline import Deadline
from .errors import AudioIOError, DecodeError, FormatUnsupported, NoAudioTrack, SyncTimeout
from .logging import get_logger


HEADER_BYTES = 16;
FRAMES_PER_READ = 64 * 1024;


class ContainerKind( Enum ):
    """Containers the transcoder can open."""

    WAV = "wav";
    MP4 = "mp4";
    MATROSKA = "matroska";
    OGG = "ogg";


@dataclass( frozen=True )
class Decoder:
    """
    One supported codec family.

    A decoder is selected at runtime from the codec name ffprobe reports;
    ``profiles`` restricts the accepted codec profiles when set.
    """

    codec: str;
    ffmpeg_codecs: Tuple[str, ...];
    profiles: Optional[Tuple[str, ...]] = None;

    def accepts( self, stream: dict ) -> bool:
        if stream.get( "codec_name" ) not in self.ffmpeg_codecs:
            return False;
        if self.profiles is None:
            return True;
        profile = stream.get( "profile" );
        # ffprobe omits the profile for some muxers; the codec name is all we have then
        return profile is None or profile in self.profiles;


PCM_CODECS = (
    "pcm_s16le", "pcm_s16be", "pcm_u8", "pcm_s8",
    "pcm_s24le", "pcm_s24be", "pcm_s32le", "pcm_s32be",
    "pcm_f32le", "pcm_f32be", "pcm_f64le", "pcm_f64be",
    "pcm_alaw", "pcm_mulaw",
);

DECODERS = (
    Decoder( "pcm", PCM_CODECS ),
    Decoder( "flac", ( "flac", ) ),
    Decoder( "alac", ( "alac", ) ),
    Decoder( "aac", ( "aac", ), profiles=( "LC", ) ),
    Decoder( "mp3", ( "mp3", "mp3float" ) ),
    Decoder( "opus", ( "opus", ) ),
    Decoder( "vorbis", ( "vorbis", ) ),
    Decoder( "wavpack", ( "wavpack", ) ),
);


def find_decoder( stream: dict ) -> Optional[Decoder]:
    """Return the decoder for a probed stream, or None if its codec is unsupported."""
    for decoder in DECODERS:
        if decoder.accepts( stream ):
            return decoder;
    return None;


@dataclass( frozen=True )
class AudioTrack:
    """The audio stream chosen for decoding."""

    index: int;
    codec_name: str;
    sample_rate: int;
    channels: int;
    decoder: Decoder;


@dataclass( frozen=True )
class AudioInfo:
    """Technical description of the decoded audio."""

    sample_rate: int;
    channel_count: int;
    duration_seconds: float;
    total_samples: int;


@dataclass
class PcmBuffer:
    """Mono signed 16-bit samples at the source's native sample rate."""

    samples: np.ndarray;
    sample_rate: int;
    channel_count: int = 1;
    source_channels: int = 1;

    @property
    def total_samples( self ) -> int:
        return int( self.samples.shape[0] );

    @property
    def duration_seconds( self ) -> float:
        return self.total_samples / self.sample_rate if self.sample_rate else 0.0;

    def info( self ) -> AudioInfo:
        return AudioInfo(
            sample_rate=self.sample_rate,
            channel_count=self.channel_count,
            duration_seconds=self.duration_seconds,
            total_samples=self.total_samples
        );


def extract_first_channel( samples: np.ndarray, channels: int ) -> np.ndarray:
    """
    Keep only the first channel of interleaved samples.

    Channels are never averaged: for [L, R, L, R, ...] the result is exactly L.
    """
    if channels < 1:
        raise ValueError( f"Channel count must be at least 1, got {channels}" );
    if channels == 1:
        return samples;
    return samples[::channels];


def iter_pcm_chunks( raw_file: Path, channels: int, frames_per_read: int = FRAMES_PER_READ, deadline: Optional[Deadline] = None ) -> Iterator[np.ndarray]:
    """
    Stream interleaved little-endian s16 frames from a raw PCM file.

    Every yielded array holds whole frames. A trailing partial frame (only
    possible at end of file) is dropped.
    """
    frame_bytes = channels * 2;
    with open( raw_file, "rb" ) as handle:
        while True:
            if deadline is not None:
                deadline.check( "Transcoding" );
            data = handle.read( frames_per_read * frame_bytes );
            if not data:
                break;
            usable = len( data ) - len( data ) % frame_bytes;
            if usable:
                yield np.frombuffer( data[:usable], dtype="<i2" );


class AudioTranscoder:
    """
    Decode audio/video files into a mono PcmBuffer.

    Features:
    - Header-based container detection (WAV, MP4/ISO, Matroska/WebM, Ogg)
    - First-supported-audio-stream selection through ffprobe
    - Direct read for mono 16-bit WAV files
    - FFmpeg decode at native rate and channel count into scoped temp storage
    """

    def __init__( self, temp_dir: Optional[Path] = None, ffmpeg_cmd: str = "ffmpeg" ):
        self.logger = get_logger();
        self.temp_dir = Path( temp_dir ) if temp_dir else None;
        self.ffmpeg_cmd = ffmpeg_cmd;

    def probe( self, path: Path ) -> ContainerKind:
        """
        Identify the container from the file header without decoding.

        Args:
            path: Media file to inspect

        Returns:
            ContainerKind of the file

        Raises:
            AudioIOError: File missing or unreadable
            FormatUnsupported: Header matches no supported container
        """
        path = Path( path );
        try:
            with open( path, "rb" ) as handle:
                header = handle.read( HEADER_BYTES );
        except OSError as e:
            raise AudioIOError( f"Cannot read media file {path}: {e}" ) from e;

        if len( header ) >= 12 and header[:4] in ( b"RIFF", b"RF64" ) and header[8:12] == b"WAVE":
            kind = ContainerKind.WAV;
        elif len( header ) >= 8 and header[4:8] == b"ftyp":
            kind = ContainerKind.MP4;
        elif header[:4] == b"\x1a\x45\xdf\xa3":
            kind = ContainerKind.MATROSKA;
        elif header[:4] == b"OggS":
            kind = ContainerKind.OGG;
        else:
            raise FormatUnsupported( f"Unrecognized container in {path.name}" );

        self.logger.debug( f"Probed {path.name}: container={kind.value}" );
        return kind;

    def select_track( self, path: Path, deadline: Optional[Deadline] = None ) -> AudioTrack:
        """
        Pick the first audio stream with a supported codec.

        Raises:
            NoAudioTrack: No audio stream in the container
            FormatUnsupported: Audio present but no stream has a supported codec
            SyncTimeout: ffprobe did not finish before the deadline
        """
        deadline = deadline or Deadline();
        deadline.check( "Transcoding" );
        try:
            info = ffmpeg.probe( str( path ), timeout=deadline.remaining() );
        except subprocess.TimeoutExpired as e:
            raise SyncTimeout( f"Probing {Path( path ).name} timed out after {e.timeout}s" ) from e;
        except ffmpeg.Error as e:
            stderr = e.stderr.decode( "utf-8", "replace" ).strip() if e.stderr else "";
            raise FormatUnsupported( f"ffprobe could not read {Path( path ).name}: {stderr}" ) from e;
        except FileNotFoundError as e:
            raise AudioIOError( "ffprobe not found. Please install FFmpeg and add it to PATH." ) from e;

        audio_streams: List[dict] = [ s for s in info.get( "streams", [] ) if s.get( "codec_type" ) == "audio" ];
        if not audio_streams:
            raise NoAudioTrack( f"No audio stream in {Path( path ).name}" );

        for stream in audio_streams:
            decoder = find_decoder( stream );
            sample_rate = int( stream.get( "sample_rate" ) or 0 );
            if decoder is None or sample_rate <= 0:
                self.logger.debug( f"Skipping stream {stream.get( 'index' )}: codec={stream.get( 'codec_name' )}" );
                continue;

            track = AudioTrack(
                index=int( stream["index"] ),
                codec_name=stream["codec_name"],
                sample_rate=sample_rate,
                channels=int( stream.get( "channels" ) or 1 ),
                decoder=decoder
            );
            self.logger.debug( f"Selected track {track.index}: codec={track.codec_name}, " \
                               f"sample_rate={track.sample_rate}, channels={track.channels}" );
            return track;

        codecs = ", ".join( str( s.get( "codec_name" ) ) for s in audio_streams );
        raise FormatUnsupported( f"No supported audio codec in {Path( path ).name} (found: {codecs})" );

    def decode_to_pcm( self, path: Path, deadline: Optional[Deadline] = None ) -> PcmBuffer:
        """
        Decode a media file to a mono PcmBuffer at its native sample rate.

        Args:
            path: Media file
            deadline: Optional per-request deadline

        Returns:
            PcmBuffer holding the first channel of the selected stream

        Raises:
            FormatUnsupported, NoAudioTrack, DecodeError, AudioIOError, SyncTimeout
        """
        path = Path( path );
        deadline = deadline or Deadline();
        deadline.check( "Transcoding" );
        kind = self.probe( path );

        if kind is ContainerKind.WAV and self._is_mono_pcm16( path ):
            return self._read_direct( path, deadline );

        track = self.select_track( path, deadline );
        return self._decode_with_ffmpeg( path, track, deadline );

    def _is_mono_pcm16( self, path: Path ) -> bool:
        try:
            info = sf.info( str( path ) );
        except RuntimeError as e:
            self.logger.debug( f"libsndfile cannot open {path.name} directly ({e}), using ffmpeg" );
            return False;
        return info.channels == 1 and info.subtype == "PCM_16";

    def _read_direct( self, path: Path, deadline: Optional[Deadline] = None ) -> PcmBuffer:
        """Pass-through read of a mono 16-bit WAV file, block by block."""
        blocks = [];
        try:
            with sf.SoundFile( str( path ) ) as handle:
                sample_rate = handle.samplerate;
                for block in handle.blocks( blocksize=FRAMES_PER_READ, dtype="int16", always_2d=False ):
                    if deadline is not None:
                        deadline.check( "Transcoding" );
                    blocks.append( block );
        except RuntimeError as e:
            raise DecodeError( f"Failed to read {path.name}: {e}" ) from e;

        samples = np.concatenate( blocks ) if blocks else np.zeros( 0, dtype=np.int16 );
        self.logger.debug( f"Direct read {path.name}: {len( samples )} samples at {sample_rate}Hz" );
        return PcmBuffer( samples=np.ascontiguousarray( samples, dtype=np.int16 ), sample_rate=int( sample_rate ) );

    def _decode_with_ffmpeg( self, path: Path, track: AudioTrack, deadline: Deadline ) -> PcmBuffer:
        with tempfile.TemporaryDirectory( prefix="vadsync_", dir=self.temp_dir ) as workdir:
            raw_file = Path( workdir ) / "decoded.s16le";
            self._run_ffmpeg( path, track, raw_file, deadline );

            chunks = [
                extract_first_channel( chunk, track.channels )
                for chunk in iter_pcm_chunks( raw_file, track.channels, deadline=deadline )
            ];

        samples = np.concatenate( chunks ).astype( np.int16 ) if chunks else np.zeros( 0, dtype=np.int16 );
        self.logger.debug( f"Decoded {path.name} ({track.decoder.codec}): {len( samples )} samples " \
                           f"at {track.sample_rate}Hz from {track.channels} channel(s)" );
        return PcmBuffer(
            samples=samples,
            sample_rate=track.sample_rate,
            source_channels=track.channels
        );

    def _run_ffmpeg( self, path: Path, track: AudioTrack, raw_file: Path, deadline: Deadline ):
        stream = ffmpeg.input( str( path ) );
        stream = ffmpeg.output(
            stream,
            str( raw_file ),
            map=f"0:{track.index}",
            acodec="pcm_s16le",           # sample format only, rate and layout untouched
            f="s16le"
        ).global_args( "-nostdin", "-loglevel", "error" );

        self.logger.debug( f"FFmpeg command: {' '.join( ffmpeg.compile( stream, cmd=self.ffmpeg_cmd, overwrite_output=True ) )}" );

        try:
            process = ffmpeg.run_async( stream, cmd=self.ffmpeg_cmd, pipe_stderr=True, overwrite_output=True );
        except FileNotFoundError as e:
            raise AudioIOError( "FFmpeg not found. Please install FFmpeg and add it to PATH." ) from e;

        try:
            _, stderr = process.communicate( timeout=deadline.remaining() );
        except subprocess.TimeoutExpired:
            process.kill();
            process.communicate();
            raise SyncTimeout( f"Transcoding {path.name} exceeded the {deadline.timeout_seconds:.1f}s timeout" );

        if process.returncode != 0:
            message = stderr.decode( "utf-8", "replace" ).strip() if stderr else "";
            raise DecodeError( f"FFmpeg failed to decode {path.name}: {message}" );

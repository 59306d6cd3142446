"""
Subtitle cues and the SRT reader/writer used by the command line tool.

The synchronization pipeline only needs the ordered cue timeline; reading and
writing the SRT text is delegated to pysrt.
"""
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Sequence
import pysrt

from .logging import get_logger


@dataclass( frozen=True )
class SubtitleCue:
    """A single subtitle cue with times in seconds."""

    start: float;
    end: float;
    text: str = "";
    index: Optional[int] = None;

    def shifted( self, offset_seconds: float ) -> "SubtitleCue":
        """Return a copy translated by offset_seconds."""
        return replace( self, start=self.start + offset_seconds, end=self.end + offset_seconds );

    def __repr__( self ):
        return f"SubtitleCue(index={self.index}, start={self.start:.3f}s, end={self.end:.3f}s, text='{self.text[:30]}')";


def validate_subtitle_file( subtitle_file: Path ):
    """
    Validate subtitle file format and existence.

    Raises:
        FileNotFoundError: File does not exist
        ValueError: File is not an .srt file
    """
    subtitle_file = Path( subtitle_file );
    if not subtitle_file.exists():
        raise FileNotFoundError( f"Subtitle file not found: {subtitle_file}" );
    if subtitle_file.suffix.lower() != ".srt":
        raise ValueError( f"Only .srt files are supported, got: {subtitle_file.suffix}" );


def _to_seconds( time: pysrt.SubRipTime ) -> float:
    return time.ordinal / 1000.0;


def _to_subrip_time( seconds: float ) -> pysrt.SubRipTime:
    return pysrt.SubRipTime.from_ordinal( int( round( seconds * 1000 ) ) );


def load_cues( subtitle_file: Path, encoding: Optional[str] = None ) -> List[SubtitleCue]:
    """
    Parse an SRT file into cues, in file order.

    Args:
        subtitle_file: Path to SRT file
        encoding: Text encoding (pysrt detects it when omitted)

    Returns:
        List of SubtitleCue objects
    """
    logger = get_logger();
    validate_subtitle_file( subtitle_file );

    subs = pysrt.open( str( subtitle_file ), encoding=encoding ) if encoding else pysrt.open( str( subtitle_file ) );
    cues = [
        SubtitleCue( start=_to_seconds( sub.start ), end=_to_seconds( sub.end ), text=sub.text, index=sub.index )
        for sub in subs
    ];

    logger.debug( f"Parsed {len( cues )} subtitle cues from {Path( subtitle_file ).name}" );
    return cues;


def save_cues( cues: Sequence[SubtitleCue], output_file: Path, encoding: str = "utf-8" ) -> Path:
    """
    Write cues to an SRT file, numbering from 1 when a cue carries no index.

    Returns:
        Path to the written file
    """
    items = pysrt.SubRipFile();
    for position, cue in enumerate( cues, start=1 ):
        items.append( pysrt.SubRipItem(
            index=cue.index if cue.index is not None else position,
            start=_to_subrip_time( cue.start ),
            end=_to_subrip_time( cue.end ),
            text=cue.text
        ) );

    output_file = Path( output_file );
    items.save( str( output_file ), encoding=encoding );
    get_logger().debug( f"Saved {len( items )} subtitle cues to {output_file}" );
    return output_file;

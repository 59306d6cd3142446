"""
CLI entry point for VadSync with argument parsing and environment variable loading.
"""
import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List
from rich.console import Console
from rich.table import Table

from .config import VAD_BACKENDS, Settings, SyncBounds, load_settings
from .errors import ConfigError, SyncError
from .logging import setup_logging
from .subtitles import load_cues, save_cues, validate_subtitle_file
from .sync import BatchOutcome, ManualMethod, SyncJob, SyncResult, VadMethod, synchronize_batch
from . import __version__


EXIT_OK = 0;
EXIT_FAILED = 1;
EXIT_OFFSET_UNAVAILABLE = 2;
EXIT_INTERRUPTED = 130;


class VadSyncCLI:
    """
    Command line interface for VadSync subtitle synchronization.

    Settings come from .env / VADSYNC_* environment variables first and are
    overridden by command line flags.
    """

    def __init__( self ):
        self.parser = self._create_parser();
        self.args = None;
        self.logger = None;
        self.settings = None;

    def _create_parser( self ):
        """Create argument parser with all VadSync options."""
        parser = argparse.ArgumentParser(
            prog="vadsync",
            description="Shift subtitles to match speech detected locally in the audio track",
            epilog="Environment variables: VADSYNC_VAD_SENSITIVITY, VADSYNC_MAX_OFFSET_SECONDS, ..."
        );

        parser.add_argument(
            "--media", "--video", "-v",
            action="append",
            type=Path,
            dest="media",
            default=[],
            help="Path to media file (.wav, .mp4, .mkv, .webm, .ogg); repeat for batch runs"
        );

        parser.add_argument(
            "--sub", "--subs", "--srt", "--subtitle", "-s",
            action="append",
            required=True,
            type=Path,
            dest="subtitle",
            help="Path to subtitle file (.srt format only); repeat in the same order as --media"
        );

        parser.add_argument(
            "--method",
            choices=[ "vad", "manual" ],
            default="vad",
            help="Synchronization method (default: vad)"
        );

        parser.add_argument(
            "--offset",
            type=float,
            default=None,
            help="Offset in seconds for --method manual (positive delays subtitles)"
        );

        # VAD tuning overrides
        parser.add_argument( "--sensitivity", type=float, help="VAD sensitivity 0.0-1.0 (default: 0.25)" );
        parser.add_argument( "--padding-chunks", type=int, help="Chunks padded around speech, 0-10 (default: 3)" );
        parser.add_argument( "--min-speech-ms", type=int, help="Minimum speech duration in ms, 0-5000 (default: 300)" );
        parser.add_argument( "--merge-gap-ms", type=int, help="Merge speech closer than this, 0-2000 ms (default: 200)" );
        parser.add_argument( "--backend", choices=list( VAD_BACKENDS ), help="VAD model (default: energy)" );
        parser.add_argument( "--max-offset", type=float, help="Maximum applied offset in seconds (default: 60)" );
        parser.add_argument( "--timeout", type=float, help="Per-file timeout in seconds for decoding and detection" );
        parser.add_argument( "--jobs", "-j", type=int, default=4, help="Parallel jobs for batch runs (default: 4)" );

        parser.add_argument(
            "--output", "-o",
            type=Path,
            default=None,
            help="Output subtitle path (single file only; default: <name>.synced.srt)"
        );

        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report the offset without writing subtitle files"
        );

        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug mode with verbose output"
        );

        parser.add_argument(
            "--log-dir",
            type=Path,
            default=None,
            help="Also write rotating log files to this directory"
        );

        return parser;

    def _build_settings( self, base: Settings ) -> Settings:
        """Apply command line overrides to settings loaded from the environment."""
        tuning = base.tuning;
        overrides = {
            'sensitivity': self.args.sensitivity,
            'padding_chunks': self.args.padding_chunks,
            'min_speech_duration_ms': self.args.min_speech_ms,
            'speech_merge_gap_ms': self.args.merge_gap_ms,
            'backend': self.args.backend
        };
        values = { key: value for key, value in overrides.items() if value is not None };
        if values:
            tuning = replace( tuning, **values );

        bounds = base.bounds;
        if self.args.max_offset is not None:
            bounds = SyncBounds( max_offset_seconds=self.args.max_offset );

        timeout = self.args.timeout if self.args.timeout is not None else base.timeout_seconds;
        return Settings( tuning=tuning, bounds=bounds, timeout_seconds=timeout );

    def _validate_arguments( self ) -> List[str]:
        """Validate parsed arguments."""
        errors = [];

        if self.args.method == "vad" and len( self.args.media ) != len( self.args.subtitle ):
            errors.append( "Each --subs needs a matching --media for the vad method" );

        if self.args.method == "manual" and self.args.media and len( self.args.media ) != len( self.args.subtitle ):
            errors.append( "--media and --subs must be given the same number of times" );

        if self.args.method == "manual" and self.args.offset is None:
            errors.append( "--method manual requires --offset" );

        if self.args.method == "vad" and self.args.offset is not None:
            errors.append( "--offset is only used with --method manual" );

        for media in self.args.media:
            if not media.exists():
                errors.append( f"Media file not found: {media}" );

        for subtitle in self.args.subtitle:
            try:
                validate_subtitle_file( subtitle );
            except ( FileNotFoundError, ValueError ) as e:
                errors.append( str( e ) );

        if self.args.output is not None and len( self.args.subtitle ) > 1:
            errors.append( "--output can only be used with a single subtitle file" );

        if self.args.jobs < 1:
            errors.append( "Number of jobs must be at least 1" );

        if self.args.timeout is not None and self.args.timeout <= 0:
            errors.append( "Timeout must be positive" );

        return errors;

    def parse_args( self, argv=None ):
        """Parse command line arguments and validate configuration."""
        self.args = self.parser.parse_args( argv );

        self.logger = setup_logging( debug=self.args.debug, log_dir=self.args.log_dir );

        errors = self._validate_arguments();
        if not errors:
            try:
                self.settings = self._build_settings( load_settings() );
            except ConfigError as e:
                errors.append( str( e ) );

        if errors:
            self.logger.error( "Configuration errors:" );
            for error in errors:
                self.logger.error( f"  - {error}" );
            sys.exit( EXIT_FAILED );

        self.logger.debug( f"VadSync v{__version__} starting..." );
        self.logger.debug( f"Method: {self.args.method}, tuning: {self.settings.tuning}, bounds: {self.settings.bounds}" );
        return self.args;

    def build_jobs( self ) -> List[SyncJob]:
        """Pair media and subtitle files into sync jobs."""
        if self.args.method == "manual":
            method = ManualMethod( self.args.offset );
            media = self.args.media or [ None ] * len( self.args.subtitle );
        else:
            method = VadMethod();
            media = self.args.media;

        return [
            SyncJob( audio_path=audio, cues=tuple( load_cues( subtitle ) ), method=method, label=str( subtitle ) )
            for audio, subtitle in zip( media, self.args.subtitle )
        ];

    def output_path( self, subtitle: Path ) -> Path:
        if self.args.output is not None:
            return self.args.output;
        return subtitle.parent / f"{subtitle.stem}.synced{subtitle.suffix}";


def render_report( outcomes: List[BatchOutcome], console: Console ):
    """Print a summary table of all sync outcomes."""
    table = Table( title="VadSync results" );
    table.add_column( "Subtitle" );
    table.add_column( "Offset", justify="right" );
    table.add_column( "Status" );
    table.add_column( "Confidence", justify="right" );
    table.add_column( "Segments", justify="right" );
    table.add_column( "Sample rate", justify="right" );

    for outcome in outcomes:
        name = Path( outcome.job.label ).name if outcome.job.label else "-";
        if not outcome.ok:
            table.add_row( name, "-", f"[red]failed: {outcome.error}[/red]", "-", "-", "-" );
            continue;
        result: SyncResult = outcome.result;
        offset = "-" if result.offset_seconds is None else f"{result.offset_seconds:+.3f}s";
        if result.offset_unavailable:
            status = "[yellow]no speech detected, offset unavailable[/yellow]";
        elif result.clamped:
            status = f"[yellow]clamped (raw {result.raw_offset_seconds:+.3f}s)[/yellow]";
        else:
            status = "[green]ok[/green]";
        rate = f"{result.sample_rate}Hz" if result.sample_rate else "-";
        table.add_row( name, offset, status, f"{result.confidence:.2f}", str( result.speech_segment_count ), rate );

    console.print( table );


def main( argv=None ):
    """Main entry point for the VadSync CLI."""
    cli = VadSyncCLI();
    args = cli.parse_args( argv );
    console = Console();

    try:
        jobs = cli.build_jobs();
        outcomes = synchronize_batch(
            jobs,
            cli.settings.tuning,
            cli.settings.bounds,
            max_workers=args.jobs,
            timeout_seconds=cli.settings.timeout_seconds
        );
    except KeyboardInterrupt:
        cli.logger.warning( "Interrupted by user" );
        sys.exit( EXIT_INTERRUPTED );
    except ( SyncError, OSError, ValueError ) as e:
        cli.logger.error( f"Synchronization failed: {e}" );
        if args.debug:
            raise;
        sys.exit( EXIT_FAILED );

    render_report( outcomes, console );

    exit_code = EXIT_OK;
    for outcome in outcomes:
        subtitle = Path( outcome.job.label );
        if not outcome.ok:
            stage = getattr( outcome.error, "stage", None );
            where = f" during {stage.value}" if stage is not None else "";
            cli.logger.error( f"{subtitle.name}: failed{where}: {outcome.error}" );
            exit_code = EXIT_FAILED;
            continue;

        result = outcome.result;
        if result.clamped:
            cli.logger.warning( f"{subtitle.name}: offset {result.raw_offset_seconds:+.3f}s exceeds " \
                                f"the {cli.settings.bounds.max_offset_seconds:.1f}s limit, " \
                                f"applied {result.offset_seconds:+.3f}s" );
        if result.offset_unavailable:
            cli.logger.warning( f"{subtitle.name}: no speech detected; rerun with --method manual --offset" );
            if exit_code == EXIT_OK:
                exit_code = EXIT_OFFSET_UNAVAILABLE;
            continue;

        if args.dry_run:
            cli.logger.info( f"Dry run: would write {cli.output_path( subtitle )}" );
            continue;

        written = save_cues( result.cues, cli.output_path( subtitle ) );
        cli.logger.info( f"Saved synchronized subtitles: {written}" );

    sys.exit( exit_code );


if __name__ == "__main__":
    main();

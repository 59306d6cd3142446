"""
Logging system for VadSync with 5MB truncation check and Rich integration.
"""
import logging
import shutil
import threading
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler


MAX_LOG_BYTES = 5 * 1024 * 1024;  # 5MB


class VadSyncLogger:
    """
    Custom logger for VadSync with optional log rotation and Rich display.

    Features:
    - Rich console output with colors (stderr, so reports on stdout stay clean)
    - File logging with rotation when a log directory is given
    - 5MB size check on startup, rotates if exceeded
    - INFO default, DEBUG with --debug flag
    """

    def __init__( self, name: str = "vadsync", debug: bool = False, log_dir: Optional[Path] = None ):
        self.name = name;
        self.debug_enabled = debug;
        self.console = Console( stderr=True );

        self.logs_dir = Path( log_dir ) if log_dir else None;
        self.log_file = None;
        if self.logs_dir is not None:
            self.logs_dir.mkdir( parents=True, exist_ok=True );
            self.log_file = self.logs_dir / f"{name}.log";
            self._check_and_rotate_on_startup();

        self.logger = self._setup_logger();

    def _check_and_rotate_on_startup( self ):
        """Check log file size on startup and rotate if >5MB."""
        if self.log_file.exists() and self.log_file.stat().st_size > MAX_LOG_BYTES:
            timestamp = datetime.now().isoformat().replace( ":", "-" );
            backup_name = self.logs_dir / f"{self.name}.{timestamp}.log";
            shutil.move( str( self.log_file ), str( backup_name ) );

    def _setup_logger( self ):
        """Setup logger with Rich console and file handlers."""
        logger = logging.getLogger( self.name );
        logger.setLevel( logging.DEBUG if self.debug_enabled else logging.INFO );

        # Clear existing handlers
        logger.handlers.clear();
        logger.propagate = False;

        console_handler = RichHandler(
            console=self.console,
            rich_tracebacks=True,
            show_time=True,
            show_path=self.debug_enabled
        );
        console_handler.setLevel( logging.DEBUG if self.debug_enabled else logging.INFO );
        console_handler.setFormatter( logging.Formatter( "%(message)s" ) );
        logger.addHandler( console_handler );

        if self.log_file is not None:
            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=MAX_LOG_BYTES,
                backupCount=5
            );
            file_handler.setLevel( logging.DEBUG );
            file_handler.setFormatter( logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ) );
            logger.addHandler( file_handler );

        return logger;

    def debug( self, message, **kwargs ):
        """Log debug message."""
        self.logger.debug( message, **kwargs );

    def info( self, message, **kwargs ):
        """Log info message."""
        self.logger.info( message, **kwargs );

    def warning( self, message, **kwargs ):
        """Log warning message."""
        self.logger.warning( message, **kwargs );

    def error( self, message, **kwargs ):
        """Log error message."""
        self.logger.error( message, **kwargs );

    def critical( self, message, **kwargs ):
        """Log critical message."""
        self.logger.critical( message, **kwargs );


# Global logger instance
_logger = None;
_logger_lock = threading.Lock();


def get_logger( debug: bool = False ) -> VadSyncLogger:
    """Get the global VadSync logger instance."""
    global _logger;
    with _logger_lock:
        if _logger is None:
            _logger = VadSyncLogger( debug=debug );
        return _logger;


def setup_logging( debug: bool = False, log_dir: Optional[Path] = None ) -> VadSyncLogger:
    """Setup logging for the application, replacing any earlier configuration."""
    global _logger;
    with _logger_lock:
        _logger = VadSyncLogger( debug=debug, log_dir=log_dir );
        return _logger;

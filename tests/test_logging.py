"""
Test cases for the shared VadSync logger.
"""
import logging
import sys
import threading
import time
from pathlib import Path

import pytest

# Add src directory to path for testing
sys.path.insert( 0, str( Path( __file__ ).parent.parent / "src" ) );

import vadsync.logging as vadsync_logging
from vadsync.logging import VadSyncLogger, get_logger, setup_logging


@pytest.fixture( autouse=True )
def fresh_logger( monkeypatch ):
    monkeypatch.setattr( vadsync_logging, "_logger", None );


class TestGetLogger:
    """Test lazy creation of the global logger."""

    def test_returns_same_instance( self ):
        assert get_logger() is get_logger();

    def test_concurrent_first_use_creates_one_logger( self, monkeypatch ):
        created = [];

        class SlowLogger( VadSyncLogger ):
            def __init__( self, *args, **kwargs ):
                created.append( self );
                # widen the window between the None check and the assignment
                time.sleep( 0.05 );
                super().__init__( *args, **kwargs );

        monkeypatch.setattr( vadsync_logging, "VadSyncLogger", SlowLogger );
        barrier = threading.Barrier( 8 );
        seen = [];

        def worker():
            barrier.wait();
            seen.append( get_logger() );

        threads = [ threading.Thread( target=worker ) for _ in range( 8 ) ];
        for thread in threads:
            thread.start();
        for thread in threads:
            thread.join();

        assert len( created ) == 1;
        assert len( seen ) == 8;
        assert all( logger is created[0] for logger in seen );
        assert len( created[0].logger.handlers ) == 1;


class TestSetupLogging:
    """Test explicit logging configuration."""

    def test_debug_level( self ):
        logger = setup_logging( debug=True );
        assert logger.logger.level == logging.DEBUG;
        assert get_logger() is logger;

    def test_log_dir_adds_file_handler( self, tmp_path ):
        logger = setup_logging( log_dir=tmp_path / "logs" );
        logger.info( "written to file" );

        assert logger.log_file == tmp_path / "logs" / "vadsync.log";
        assert len( logger.logger.handlers ) == 2;
        for handler in logger.logger.handlers:
            handler.flush();
        assert "written to file" in logger.log_file.read_text();

        # release the file handle before tmp_path cleanup
        for handler in list( logger.logger.handlers ):
            handler.close();
        logger.logger.handlers.clear();


if __name__ == '__main__':
    pytest.main( [ __file__ ] );

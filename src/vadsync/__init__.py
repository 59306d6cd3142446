"""
VadSync - Local subtitle synchronization.

Detects speech in the audio track with voice activity detection and shifts
subtitles so the first cue lines up with the first detected speech.
"""

__version__ = "0.1.0";
__author__ = "VadSync Project";
__license__ = "MIT";

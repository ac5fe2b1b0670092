"""
Jukebox - single-stream request scheduler for continuous live broadcasts.
"""

__version__ = "0.1.0"

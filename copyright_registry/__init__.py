"""
Copyright Registry - Track Registration Back Office

Artists submit audio tracks, administrators review them, and approved tracks
are screened for duplicate audio and lyrics before they can be registered as
copyrighted.
"""

__version__ = "1.0.0"
__author__ = "Copyright Registry Team"
__description__ = "Track registration and duplicate detection back office"

"""
Duplicate detection services: similarity scorers, fingerprint client, review workflow and payments.
"""

from .text_similarity import *
from .fingerprint_similarity import *
from .fingerprint import *
from .duplicate_detection import *
from .review import *
from .payments import *

"""
Core infrastructure modules for database, settings, and utilities.
"""

from .database import *
from .settings import *
from .utils import *

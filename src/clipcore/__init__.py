"""
ClipCore - article extraction for note capture.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .extractor import ExtractionSession, ExtractorManager, ExtractResult, extract

__all__ = ["__version__", "Config", "ExtractionSession", "ExtractorManager", "ExtractResult", "extract"]

"""
overlay-translator - glossary-first translation of short, repeating UI strings.
"""

from .config import TranslatorConfig, load_config
from .glossary import Category, GlossaryMatcher, GlossaryStore, match_case
from .service import AppliedTranslation, Candidate, TranslationService
from .translation import DispatchStatus, TranslationCache, TranslationDispatcher, TranslationResult

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("overlay-translator")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable

__all__ = [
    "TranslationService",
    "Candidate",
    "AppliedTranslation",
    "TranslatorConfig",
    "load_config",
    "Category",
    "GlossaryStore",
    "GlossaryMatcher",
    "match_case",
    "TranslationCache",
    "TranslationDispatcher",
    "TranslationResult",
    "DispatchStatus",
]

"""
Translation pipeline for overlay-translator.

Components:
- TranslationCache: bounded LRU cache persisted per target language
- TokenBucket, InFlightRegistry: throttling and de-duplication of remote calls
- DeepLTranslator, MockTranslator: remote transports
- TranslationDispatcher: cache -> glossary -> remote resolution
"""

from .cache import TranslationCache, TranslationCacheStats, cache_path_for
from .dispatcher import (
    DispatchStatus,
    RequestState,
    ResultChannel,
    ResultOrigin,
    TranslationDispatcher,
    TranslationResult,
)
from .limits import InFlightRegistry, TokenBucket
from .remote import DeepLTranslator, MockTranslator, RemoteTranslator, TransportResult, sanitize_markup

__all__ = [
    # Dispatcher
    "TranslationDispatcher",
    "TranslationResult",
    "DispatchStatus",
    "ResultOrigin",
    "RequestState",
    "ResultChannel",
    # Cache
    "TranslationCache",
    "TranslationCacheStats",
    "cache_path_for",
    # Limits
    "TokenBucket",
    "InFlightRegistry",
    # Remote
    "RemoteTranslator",
    "DeepLTranslator",
    "MockTranslator",
    "TransportResult",
    "sanitize_markup",
]

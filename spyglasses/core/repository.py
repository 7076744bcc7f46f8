"""
Pattern repository: owns the active PatternDataset.

Initialization precedence:
  1. Compiled-in defaults (always available)
  2. Cached copy, if present and well-formed
  3. Whatever a later successful sync hands to replace()

Readers call current() and get an immutable snapshot; replace() swaps the
reference under a single write lock, so a reader sees either the old
dataset or the new one, never a mix.
"""

import threading

import structlog
from pydantic import ValidationError

from spyglasses.core.cache import CacheStore
from spyglasses.core.defaults import default_dataset
from spyglasses.models.patterns import PatternDataset

logger = structlog.get_logger()

PATTERNS_CACHE_KEY = "spyglasses_patterns"
DEFAULT_CACHE_TTL = 86400


class PatternRepository:
    def __init__(
        self,
        cache: CacheStore | None = None,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        dataset: PatternDataset | None = None,
    ):
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._write_lock = threading.Lock()
        self._dataset = dataset or self.bootstrap()

    @classmethod
    def initialize(cls, cache: CacheStore | None, cache_ttl: int = DEFAULT_CACHE_TTL) -> "PatternRepository":
        """Build a repository from defaults, overridden by the cached copy if any."""
        repo = cls(cache=cache, cache_ttl=cache_ttl)
        if cache is not None:
            cached = cls.load_cached(cache)
            if cached is not None:
                repo._dataset = cached
                logger.debug("patterns_loaded_from_cache",
                             version=cached.version,
                             patterns=len(cached.patterns),
                             ai_referrers=len(cached.ai_referrers))
        return repo

    @staticmethod
    def bootstrap() -> PatternDataset:
        return default_dataset()

    @staticmethod
    def load_cached(cache: CacheStore) -> PatternDataset | None:
        """Read the cached dataset. Missing, expired or malformed → None."""
        raw = cache.get(PATTERNS_CACHE_KEY)
        if not raw:
            return None

        try:
            dataset = PatternDataset.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("cached_patterns_invalid", error_count=e.error_count())
            return None

        if not dataset.patterns:
            return None
        return dataset

    def current(self) -> PatternDataset:
        return self._dataset

    def replace(self, dataset: PatternDataset) -> None:
        """Swap in a new dataset, then persist it to the cache."""
        with self._write_lock:
            self._dataset = dataset

        if self._cache is None:
            return
        try:
            self._cache.set(PATTERNS_CACHE_KEY, dataset.model_dump_json().encode(), self._cache_ttl)
        except Exception as e:
            # The in-memory swap stands even when persisting fails.
            logger.warning("patterns_cache_write_failed", error=str(e))

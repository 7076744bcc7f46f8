"""
Bot & AI-referrer detection.

Two stages, bot first:
  1. User-Agent vs. bot patterns (case-insensitive regex, dataset order,
     first match wins, policy decides should_block)
  2. Referer hostname vs. AI referrer substrings (never blocked)

Results are never combined: a bot match short-circuits the referrer stage.
Detection only reads the in-memory snapshot. It never touches the network or the cache.
"""

import re
from urllib.parse import urlparse

import structlog

from spyglasses.core.errors import PatternCompileError
from spyglasses.core.policy import should_block
from spyglasses.core.repository import PatternRepository
from spyglasses.models.detection import DetectionResult, SourceType
from spyglasses.models.patterns import PatternDataset

logger = structlog.get_logger()


def compile_pattern(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise PatternCompileError(pattern, str(e)) from e


def extract_hostname(referrer: str) -> str:
    """Lowercase hostname of a referrer URL, or the raw lowercase string."""
    try:
        host = urlparse(referrer).hostname
    except ValueError:
        host = None
    return host.lower() if host else referrer.lower()


class DetectionEngine:
    def __init__(self, repository: PatternRepository):
        self.repository = repository
        # (dataset, compiled patterns) for the snapshot last seen
        self._compiled: tuple[PatternDataset, tuple[re.Pattern | None, ...]] | None = None

    def _compiled_patterns(self, dataset: PatternDataset) -> tuple[re.Pattern | None, ...]:
        cached = self._compiled
        if cached is not None and cached[0] is dataset:
            return cached[1]

        compiled: list[re.Pattern | None] = []
        for bot in dataset.patterns:
            try:
                compiled.append(compile_pattern(bot.pattern))
            except PatternCompileError as e:
                logger.warning("bot_pattern_invalid", pattern=e.pattern, reason=e.reason)
                compiled.append(None)

        result = tuple(compiled)
        self._compiled = (dataset, result)
        return result

    def detect(self, user_agent: str | None = "", referrer: str | None = "") -> DetectionResult:
        """Bot check first, then AI referrer; 'none' if neither matches."""
        dataset = self.repository.current()

        bot_result = self._detect_bot(dataset, user_agent or "")
        if bot_result.detected:
            return bot_result

        if referrer:
            return self._detect_ai_referrer(dataset, referrer)

        logger.debug("detection_none", has_user_agent=bool(user_agent))
        return DetectionResult.none()

    def detect_bot(self, user_agent: str | None) -> DetectionResult:
        return self._detect_bot(self.repository.current(), user_agent or "")

    def detect_ai_referrer(self, referrer: str | None) -> DetectionResult:
        if not referrer:
            return DetectionResult.none()
        return self._detect_ai_referrer(self.repository.current(), referrer)

    def _detect_bot(self, dataset: PatternDataset, user_agent: str) -> DetectionResult:
        if not user_agent:
            return DetectionResult.none()

        compiled = self._compiled_patterns(dataset)
        for bot, regex in zip(dataset.patterns, compiled):
            if regex is None or not regex.search(user_agent):
                continue

            block = should_block(bot, dataset.settings)
            logger.debug("bot_detected",
                         pattern=bot.pattern,
                         type=bot.type,
                         category=bot.category,
                         company=bot.company,
                         is_ai_model_trainer=bot.is_ai_model_trainer,
                         should_block=block)
            return DetectionResult(
                source_type=SourceType.BOT,
                should_block=block,
                matched_pattern=bot.pattern,
                info=bot,
            )

        return DetectionResult.none()

    def _detect_ai_referrer(self, dataset: PatternDataset, referrer: str) -> DetectionResult:
        hostname = extract_hostname(referrer)

        for ai_referrer in dataset.ai_referrers:
            for pattern in ai_referrer.patterns:
                if pattern and pattern in hostname:
                    logger.debug("ai_referrer_detected",
                                 pattern=pattern,
                                 hostname=hostname,
                                 referrer_id=ai_referrer.id)
                    return DetectionResult(
                        source_type=SourceType.AI_REFERRER,
                        should_block=False,
                        matched_pattern=pattern,
                        info=ai_referrer,
                    )

        return DetectionResult.none()

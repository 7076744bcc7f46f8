"""Per-request values: what the engine decided and what the host observed."""

from dataclasses import dataclass, field
from enum import Enum

from spyglasses.models.patterns import AiReferrer, BotPattern


class SourceType(str, Enum):
    NONE = "none"
    BOT = "bot"
    AI_REFERRER = "ai_referrer"


@dataclass(frozen=True)
class DetectionResult:
    source_type: SourceType = SourceType.NONE
    should_block: bool = False
    matched_pattern: str | None = None
    info: BotPattern | AiReferrer | None = None

    def __post_init__(self):
        if self.source_type is SourceType.NONE:
            if self.should_block or self.matched_pattern is not None or self.info is not None:
                raise ValueError("A 'none' result carries no match")
        elif self.source_type is SourceType.BOT:
            if not isinstance(self.info, BotPattern):
                raise ValueError("A bot result needs BotPattern info")
        elif self.source_type is SourceType.AI_REFERRER:
            if self.should_block:
                raise ValueError("AI referrers are never blocked")
            if not isinstance(self.info, AiReferrer):
                raise ValueError("An ai_referrer result needs AiReferrer info")

    @classmethod
    def none(cls) -> "DetectionResult":
        return cls()

    @property
    def detected(self) -> bool:
        return self.source_type is not SourceType.NONE

    @property
    def bot_info(self) -> BotPattern | None:
        return self.info if self.source_type is SourceType.BOT else None

    @property
    def referrer_info(self) -> AiReferrer | None:
        return self.info if self.source_type is SourceType.AI_REFERRER else None


@dataclass
class RequestContext:
    """What the host knows about one request, as sent to the collector."""
    url: str = ""
    user_agent: str = ""
    ip: str = ""
    method: str = "GET"
    path: str = "/"
    query: str = ""
    referrer: str | None = None
    response_status: int | None = None  # None -> 403 if blocked, else 200
    response_time_ms: int = 0
    headers: dict[str, str] = field(default_factory=dict)

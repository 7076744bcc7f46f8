"""
Compiled-in bootstrap dataset.

Used until a cached or synced dataset is available. Kept deliberately
small: the well-known AI assistants, the big model-training crawlers,
and the chat products whose links show up as referrers.
"""

from spyglasses.models.patterns import AiReferrer, BotPattern, PatternDataset, PropertySettings

_ANTHROPIC_CRAWLER_DOCS = (
    "https://support.anthropic.com/en/articles/8896518-does-anthropic-crawl-data-"
    "from-the-web-and-how-can-site-owners-block-the-crawler"
)

DEFAULT_BOT_PATTERNS: tuple[BotPattern, ...] = (
    # --- AI assistants (fetching on behalf of a user) ---
    BotPattern(
        pattern="ChatGPT-User/[0-9]",
        url="https://platform.openai.com/docs/bots",
        type="chatgpt-user",
        category="AI Agent",
        subcategory="AI Assistants",
        company="OpenAI",
        is_compliant=True,
        is_ai_model_trainer=False,
        intent="UserQuery",
    ),
    BotPattern(
        pattern="Claude-User/[0-9]",
        url=_ANTHROPIC_CRAWLER_DOCS,
        type="claude-user",
        category="AI Agent",
        subcategory="AI Assistants",
        company="Anthropic",
        is_compliant=True,
        is_ai_model_trainer=False,
        intent="UserQuery",
    ),
    # --- Model training crawlers ---
    BotPattern(
        pattern="CCBot/[0-9]",
        url="https://commoncrawl.org/ccbot",
        type="ccbot",
        category="AI Crawler",
        subcategory="Model Training Crawlers",
        company="Common Crawl",
        is_compliant=True,
        is_ai_model_trainer=True,
        intent="DataCollection",
    ),
    BotPattern(
        pattern="GPTBot/[0-9]",
        url="https://platform.openai.com/docs/gptbot",
        type="gptbot",
        category="AI Crawler",
        subcategory="Model Training Crawlers",
        company="OpenAI",
        is_compliant=True,
        is_ai_model_trainer=True,
        intent="DataCollection",
    ),
    BotPattern(
        pattern="ClaudeBot/[0-9]",
        url=_ANTHROPIC_CRAWLER_DOCS,
        type="claude-bot",
        category="AI Crawler",
        subcategory="Model Training Crawlers",
        company="Anthropic",
        is_compliant=True,
        is_ai_model_trainer=True,
        intent="DataCollection",
    ),
)

DEFAULT_AI_REFERRERS: tuple[AiReferrer, ...] = (
    AiReferrer(
        id="chatgpt",
        name="ChatGPT",
        company="OpenAI",
        url="https://chat.openai.com",
        patterns=("chat.openai.com", "chatgpt.com"),
        description="Traffic from ChatGPT users clicking on links",
    ),
    AiReferrer(
        id="claude",
        name="Claude",
        company="Anthropic",
        url="https://claude.ai",
        patterns=("claude.ai",),
        description="Traffic from Claude users clicking on links",
    ),
    AiReferrer(
        id="perplexity",
        name="Perplexity",
        company="Perplexity AI",
        url="https://perplexity.ai",
        patterns=("perplexity.ai",),
        description="Traffic from Perplexity users clicking on links",
    ),
)

BOOTSTRAP_VERSION = "bootstrap"


def default_dataset() -> PatternDataset:
    return PatternDataset(
        patterns=DEFAULT_BOT_PATTERNS,
        ai_referrers=DEFAULT_AI_REFERRERS,
        settings=PropertySettings(),
        version=BOOTSTRAP_VERSION,
        synced_at=None,
    )

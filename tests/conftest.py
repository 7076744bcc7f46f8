"""Pytest configuration."""

import os

import pytest

# Ensure test environment
os.environ.setdefault("SPYGLASSES_API_KEY", "")
os.environ.setdefault("SPYGLASSES_DEBUG_MODE", "true")

from spyglasses.config import Settings
from spyglasses.core.cache import MemoryCache
from spyglasses.core.repository import PatternRepository

TEST_API_KEY = "sg_test_0123456789abcdef"

GPTBOT_UA = "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko; compatible; GPTBot/1.2; +https://openai.com/gptbot)"
CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def make_settings(**overrides) -> Settings:
    values = {"api_key": TEST_API_KEY, "debug_mode": True}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def repository(cache) -> PatternRepository:
    return PatternRepository.initialize(cache)


def patterns_payload(**overrides) -> dict:
    """A patterns API body shaped like the live endpoint's."""
    body = {
        "version": "2.4.0",
        "patterns": [
            {
                "pattern": "PerplexityBot/[0-9]",
                "url": "https://docs.perplexity.ai/guides/bots",
                "type": "perplexitybot",
                "category": "AI Crawler",
                "subcategory": "Search Crawlers",
                "company": "Perplexity AI",
                "is_compliant": True,
                "is_ai_model_trainer": False,
                "intent": "Search",
            },
            {
                "pattern": "GPTBot/[0-9]",
                "url": "https://platform.openai.com/docs/gptbot",
                "type": "gptbot",
                "category": "AI Crawler",
                "subcategory": "Model Training Crawlers",
                "company": "OpenAI",
                "is_compliant": True,
                "is_ai_model_trainer": True,
                "intent": "DataCollection",
            },
        ],
        "aiReferrers": [
            {
                "id": "gemini",
                "name": "Gemini",
                "company": "Google",
                "url": "https://gemini.google.com",
                "patterns": ["gemini.google.com"],
                "description": "Traffic from Gemini users clicking on links",
            },
        ],
        "propertySettings": {
            "blockAiModelTrainers": True,
            "customBlocks": ["category:AI Crawler"],
            "customAllows": [],
        },
    }
    body.update(overrides)
    return body

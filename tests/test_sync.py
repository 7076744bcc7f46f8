"""Tests for pattern sync against a mocked patterns endpoint."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import respx

from conftest import TEST_API_KEY, make_settings, patterns_payload
from spyglasses.core.defaults import BOOTSTRAP_VERSION
from spyglasses.core.errors import (
    ConfigurationError,
    HttpError,
    MalformedResponse,
    NetworkError,
    SyncInProgressError,
)
from spyglasses.core.repository import PatternRepository
from spyglasses.core.sync import SyncCoordinator, parse_patterns_payload

PATTERNS_URL = "https://www.spyglasses.io/api/patterns"


def _coordinator(repository, **overrides) -> SyncCoordinator:
    return SyncCoordinator(repository, make_settings(**overrides))


class SlowClient:
    """Stands in for httpx.AsyncClient; holds every GET until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = 0

    async def get(self, url, headers=None, timeout=None):
        self.calls += 1
        await self.release.wait()
        return httpx.Response(200, json=patterns_payload(), request=httpx.Request("GET", url))


class TestParsePayload:
    def test_full_payload(self):
        now = datetime(2026, 10, 19, tzinfo=timezone.utc)
        dataset = parse_patterns_payload(patterns_payload(), now)
        assert dataset.version == "2.4.0"
        assert dataset.synced_at == now
        assert [p.pattern for p in dataset.patterns] == ["PerplexityBot/[0-9]", "GPTBot/[0-9]"]
        assert dataset.ai_referrers[0].id == "gemini"
        assert dataset.settings.block_ai_model_trainers is True
        assert dataset.settings.custom_blocks == frozenset({"category:AI Crawler"})

    def test_optional_sections_default(self):
        body = {"patterns": [{"pattern": "Bytespider"}]}
        dataset = parse_patterns_payload(body, datetime.now(timezone.utc))
        assert dataset.ai_referrers == ()
        assert dataset.settings.block_ai_model_trainers is False
        assert dataset.settings.custom_blocks == frozenset()
        assert dataset.settings.custom_allows == frozenset()
        assert dataset.version == "1.0.0"
        assert dataset.patterns[0].category == "Unknown"
        assert dataset.patterns[0].subcategory == "Unclassified"

    def test_partial_property_settings(self):
        body = {"patterns": [{"pattern": "Bytespider"}], "propertySettings": {"customAllows": ["category:AI Agent"]}}
        settings = parse_patterns_payload(body, datetime.now(timezone.utc)).settings
        assert settings.block_ai_model_trainers is False
        assert settings.custom_blocks == frozenset()
        assert settings.custom_allows == frozenset({"category:AI Agent"})

    def test_null_pattern_fields_take_defaults(self):
        body = {"patterns": [{
            "pattern": "GPTBot/[0-9]",
            "type": None,
            "category": None,
            "subcategory": None,
            "intent": None,
            "is_compliant": None,
            "is_ai_model_trainer": None,
        }]}
        pattern = parse_patterns_payload(body, datetime.now(timezone.utc)).patterns[0]
        assert pattern.pattern == "GPTBot/[0-9]"
        assert pattern.type == "unknown"
        assert pattern.category == "Unknown"
        assert pattern.subcategory == "Unclassified"
        assert pattern.intent == "unknown"
        assert pattern.is_compliant is False
        assert pattern.is_ai_model_trainer is False

    def test_null_referrer_fields_take_defaults(self):
        body = {
            "patterns": [{"pattern": "GPTBot/[0-9]"}],
            "aiReferrers": [{"id": "gemini", "name": "Gemini", "patterns": None, "description": None}],
        }
        referrer = parse_patterns_payload(body, datetime.now(timezone.utc)).ai_referrers[0]
        assert referrer.patterns == ()
        assert referrer.description == ""

    @pytest.mark.parametrize("body", [
        [],
        "patterns",
        None,
        {},
        {"patterns": []},
        {"patterns": None},
        {"patterns": "GPTBot"},
        {"patterns": [{"type": "no-pattern-field"}]},
        {"patterns": [{"pattern": "X"}], "aiReferrers": [{"name": "missing id"}]},
    ])
    def test_malformed(self, body):
        with pytest.raises(MalformedResponse):
            parse_patterns_payload(body, datetime.now(timezone.utc))


class TestSync:
    @pytest.mark.asyncio
    @respx.mock
    async def test_success_replaces_dataset(self, repository, cache):
        route = respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, json=patterns_payload()))
        coordinator = _coordinator(repository)

        result = await coordinator.sync()

        assert result.ok
        assert route.called
        request = route.calls.last.request
        assert request.headers["x-api-key"] == TEST_API_KEY
        assert repository.current() is result.dataset
        assert repository.current().version == "2.4.0"
        assert PatternRepository.load_cached(cache) == result.dataset

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_patterns_is_malformed(self, repository):
        respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, json={"patterns": []}))
        before = repository.current()

        result = await _coordinator(repository).sync()

        assert not result.ok
        assert isinstance(result.error, MalformedResponse)
        assert repository.current() is before

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_is_malformed(self, repository):
        respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, text="<html>oops</html>"))
        result = await _coordinator(repository).sync()
        assert isinstance(result.error, MalformedResponse)
        assert repository.current().version == BOOTSTRAP_VERSION

    @pytest.mark.asyncio
    @respx.mock
    @pytest.mark.parametrize("status", [401, 404, 500, 503])
    async def test_http_error(self, repository, status):
        respx.get(PATTERNS_URL).mock(return_value=httpx.Response(status))
        result = await _coordinator(repository).sync()
        assert isinstance(result.error, HttpError)
        assert result.error.status_code == status
        assert repository.current().version == BOOTSTRAP_VERSION

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_is_network_error(self, repository):
        respx.get(PATTERNS_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
        result = await _coordinator(repository).sync()
        assert isinstance(result.error, NetworkError)

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error_is_network_error(self, repository):
        respx.get(PATTERNS_URL).mock(side_effect=httpx.ConnectError("refused"))
        result = await _coordinator(repository).sync()
        assert isinstance(result.error, NetworkError)
        assert repository.current().version == BOOTSTRAP_VERSION

    @pytest.mark.asyncio
    @respx.mock
    async def test_custom_endpoint(self, repository):
        route = respx.get("https://patterns.internal/api").mock(
            return_value=httpx.Response(200, json=patterns_payload())
        )
        result = await _coordinator(repository, patterns_endpoint="https://patterns.internal/api").sync()
        assert result.ok
        assert route.called

    @pytest.mark.asyncio
    async def test_missing_api_key(self, repository):
        result = await _coordinator(repository, api_key="").sync()
        assert isinstance(result.error, ConfigurationError)

    @pytest.mark.asyncio
    async def test_concurrent_sync_is_single_flight(self, repository):
        client = SlowClient()
        coordinator = SyncCoordinator(repository, make_settings(), http_client=client)

        first = asyncio.create_task(coordinator.sync())
        await asyncio.sleep(0.01)
        assert coordinator.in_progress
        second = await coordinator.sync()
        skipped = await coordinator.sync_if_needed(now=10_000_000.0)
        client.release.set()
        first_result = await first

        assert isinstance(second.error, SyncInProgressError)
        assert skipped is None
        assert first_result.ok
        assert client.calls == 1


class TestSyncIfNeeded:
    @pytest.mark.asyncio
    @respx.mock
    async def test_twice_within_ttl_fetches_once(self, repository):
        route = respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, json=patterns_payload()))
        coordinator = _coordinator(repository, cache_ttl=3600)

        first = await coordinator.sync_if_needed(now=10_000.0)
        second = await coordinator.sync_if_needed(now=10_000.0 + 3599)

        assert first.ok
        assert second is None
        assert route.call_count == 1
        assert coordinator.last_sync_time == 10_000.0

    @pytest.mark.asyncio
    @respx.mock
    async def test_syncs_again_after_ttl(self, repository):
        route = respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, json=patterns_payload()))
        coordinator = _coordinator(repository, cache_ttl=300)

        await coordinator.sync_if_needed(now=10_000.0)
        await coordinator.sync_if_needed(now=10_300.0)
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_auto_sync_disabled(self, repository):
        route = respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, json=patterns_payload()))
        result = await _coordinator(repository, auto_sync=False).sync_if_needed(now=10_000.0)
        assert result is None
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_api_key(self, repository):
        route = respx.get(PATTERNS_URL).mock(return_value=httpx.Response(200, json=patterns_payload()))
        result = await _coordinator(repository, api_key="").sync_if_needed(now=10_000.0)
        assert result is None
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_failure_leaves_clock_alone(self, repository):
        respx.get(PATTERNS_URL).mock(return_value=httpx.Response(500))
        coordinator = _coordinator(repository)

        result = await coordinator.sync_if_needed(now=10_000_000.0)

        assert isinstance(result.error, HttpError)
        assert coordinator.last_sync_time == 0.0
        assert coordinator.is_due(10_000_001.0)

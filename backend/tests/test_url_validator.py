"""Tests for URL format checks, reachability probes and the result cache."""

import httpx
import pytest

from eventsync.services.url_validator import URLValidator


def counting_client(mock_client, status=200, content_type="text/html", exc=None):
    calls = []

    def handler(request):
        calls.append(str(request.url))
        if exc is not None:
            raise exc
        return httpx.Response(status, headers={"content-type": content_type})

    return mock_client(handler), calls


class TestFormat:

    @pytest.mark.parametrize(
        "url",
        ["https://allevents.in/e/1", "http://localhost:8000/x", "https://www.explara.com"],
    )
    def test_valid(self, url):
        assert URLValidator().is_valid_format(url) is True

    @pytest.mark.parametrize("url", ["", None, "ftp://allevents.in/x", "https://", "not a url", "https://nohost"])
    def test_invalid(self, url):
        assert URLValidator().is_valid_format(url) is False


class TestIsAccessible:
    """HEAD probes and caching."""

    async def test_success_is_cached(self, mock_client):
        client, calls = counting_client(mock_client)
        validator = URLValidator(http_client=client)

        first = await validator.is_accessible("https://allevents.in/e/1")
        second = await validator.is_accessible("https://allevents.in/e/1")

        assert first.is_valid is True
        assert first.status_code == 200
        assert first.cached is False
        assert second.cached is True
        assert len(calls) == 1

    async def test_cache_bypass(self, mock_client):
        client, calls = counting_client(mock_client)
        validator = URLValidator(http_client=client)

        await validator.is_accessible("https://allevents.in/e/1")
        await validator.is_accessible("https://allevents.in/e/1", use_cache=False)

        assert len(calls) == 2

    async def test_expired_entries_are_refetched(self, mock_client):
        client, calls = counting_client(mock_client)
        validator = URLValidator(http_client=client, cache_ttl=0)

        await validator.is_accessible("https://allevents.in/e/1")
        await validator.is_accessible("https://allevents.in/e/1")

        assert len(calls) == 2

    async def test_method_not_allowed_counts_as_reachable(self, mock_client):
        client, _ = counting_client(mock_client, status=405)
        result = await URLValidator(http_client=client).is_accessible("https://allevents.in/e/1")
        assert result.is_valid is True

    async def test_network_error_is_not_cached(self, mock_client):
        client, calls = counting_client(mock_client, exc=httpx.ConnectError("refused"))
        validator = URLValidator(http_client=client)

        result = await validator.is_accessible("https://allevents.in/e/1")
        await validator.is_accessible("https://allevents.in/e/1")

        assert result.is_valid is False
        assert "refused" in result.error
        assert len(calls) == 2
        assert validator.get_cache_stats()["total"] == 0

    async def test_invalid_format_makes_no_request(self, mock_client):
        client, calls = counting_client(mock_client)
        result = await URLValidator(http_client=client).is_accessible("javascript:void(0)")

        assert result.is_valid is False
        assert result.error == "Invalid URL format"
        assert calls == []


class TestValidateEventUrl:
    """Retrying ticket URL checks."""

    async def test_not_found_is_not_retried(self, mock_client):
        client, calls = counting_client(mock_client, status=404)
        validator = URLValidator(http_client=client, retry_base_delay=0)

        result = await validator.validate_event_url("https://allevents.in/e/1", "allevents")

        assert result.is_valid is False
        assert result.status_code == 404
        assert len(calls) == 1

    async def test_server_error_is_retried(self, mock_client):
        client, calls = counting_client(mock_client, status=503)
        validator = URLValidator(http_client=client, retry_base_delay=0)

        result = await validator.validate_event_url("https://allevents.in/e/1", "allevents", max_retries=2)

        assert result.is_valid is False
        assert len(calls) == 3
        assert result.error == "Validation failed after 3 attempts: HTTP 503"

    async def test_recovers_on_retry(self, mock_client):
        statuses = iter([502, 200])
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(next(statuses))

        validator = URLValidator(http_client=mock_client(handler), retry_base_delay=0)
        result = await validator.validate_event_url("https://allevents.in/e/1", "allevents")

        assert result.is_valid is True
        assert len(calls) == 2

    async def test_domain_mismatch(self, mock_client):
        client, _ = counting_client(mock_client)
        validator = URLValidator(http_client=client)

        result = await validator.validate_event_url("https://example.com/e/1", "townscript")

        assert result.is_valid is False
        assert result.error == "URL doesn't match townscript domain pattern"

    def test_platform_hosts(self):
        validator = URLValidator()
        assert validator.is_platform_url("https://www.townscript.com/e/x", "townscript")
        assert validator.is_platform_url("https://insider.in/event/x", "paytm-insider")
        assert not validator.is_platform_url("https://notinsider.in/event/x", "paytm-insider")
        assert validator.is_platform_url("https://anything.example/x", "community")


class TestImageUrls:

    async def test_content_type_decides(self, mock_client):
        client, _ = counting_client(mock_client, content_type="image/webp")
        assert await URLValidator(http_client=client).is_valid_image_url("https://cdn.allevents.in/a") is True

    async def test_non_image_content_type_rejected(self, mock_client):
        client, _ = counting_client(mock_client, content_type="text/html")
        assert await URLValidator(http_client=client).is_valid_image_url("https://cdn.allevents.in/a.jpg") is False

    async def test_extension_used_when_no_content_type(self, mock_client):
        def handler(request):
            return httpx.Response(200)

        validator = URLValidator(http_client=mock_client(handler))
        assert await validator.is_valid_image_url("https://cdn.allevents.in/a.png") is True
        assert await validator.is_valid_image_url("https://cdn.allevents.in/a") is False


class TestCacheManagement:

    async def test_stats_and_clear(self, mock_client):
        def handler(request):
            return httpx.Response(200 if request.url.path == "/ok" else 404)

        validator = URLValidator(http_client=mock_client(handler))
        await validator.is_accessible("https://allevents.in/ok")
        await validator.is_accessible("https://allevents.in/missing")

        assert validator.get_cache_stats() == {"total": 2, "valid": 1, "invalid": 1, "expired": 0}

        validator.clear_cache("https://allevents.in/ok")
        assert validator.get_cache_stats()["total"] == 1

        validator.clear_cache()
        assert validator.get_cache_stats()["total"] == 0

"""Tests for the command-line runner."""

import json

import pytest

from eventsync import cli
from eventsync.scrapers.base import BaseEventAdapter, PlatformFetchResult
from eventsync.scrapers.factory import AdapterFactory
from eventsync.scrapers.utils.rate_queue import RateLimitConfig, RateLimitedQueue


def canned_adapter(platform, events_factory):
    """Adapter class whose fetch() returns events built at call time."""

    class CannedAdapter(BaseEventAdapter):
        adapter_type = "html"

        def listing_urls(self, city_slug, config):
            return []

        async def fetch_listing(self, url, config):
            return ""

        def parse_strategies(self):
            return []

        async def fetch(self, config):
            return PlatformFetchResult(platform=self.platform, success=True, events=events_factory(config))

    CannedAdapter.platform = platform
    return CannedAdapter


@pytest.fixture
def stub_factory(monkeypatch, make_event):
    """Point the CLI at a factory with one canned allevents adapter."""

    def events(config):
        return [
            make_event(external_id="allevents-1", city=config.city),
            make_event(external_id="allevents-2", city=config.city, image_url=None),
        ]

    def build():
        factory = AdapterFactory(
            request_queue=RateLimitedQueue(default_config=RateLimitConfig(min_delay=0))
        )
        factory.register_adapter("allevents", canned_adapter("allevents", events))
        return factory

    monkeypatch.setattr(cli, "create_adapter_factory", build)


class TestParser:

    def test_repeatable_options(self):
        args = cli.build_parser().parse_args(
            ["--city", "Mumbai", "--city", "Pune", "--platform", "allevents", "--limit", "5", "--dedupe"]
        )
        assert args.city == ["Mumbai", "Pune"]
        assert args.platforms == ["allevents"]
        assert args.limit == 5
        assert args.dedupe is True
        assert args.sync is False

    def test_city_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_negative_limit_rejected(self, capsys):
        assert cli.main(["--city", "Mumbai", "--limit", "-1"]) == 2
        assert "--limit" in capsys.readouterr().err


class TestMain:
    """End-to-end runs against canned adapters."""

    def test_json_output_with_dedupe(self, stub_factory, capsys):
        exit_code = cli.main(["--city", "Mumbai", "--dedupe", "--json", "--log-level", "ERROR"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output[0]["city"] == "Mumbai"
        assert output[0]["duplicates_removed"] == 1
        assert output[0]["total_events"] == 1
        assert output[0]["all_events"][0]["external_id"] == "allevents-1"

    def test_table_output(self, stub_factory, capsys):
        exit_code = cli.main(["--city", "Pune", "--log-level", "ERROR"])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Events for Pune" in out
        assert "allevents" in out

    def test_unknown_platform_only_fails(self, stub_factory, capsys):
        exit_code = cli.main(["--city", "Pune", "--platform", "meetup", "--json", "--log-level", "ERROR"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert output[0]["success"] is False

    def test_sync_mode(self, stub_factory, capsys):
        exit_code = cli.main(["--city", "Mumbai", "--sync", "--json", "--log-level", "ERROR"])

        stats = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert stats["inserted"] == 1
        assert stats["duplicates_removed"] == 1

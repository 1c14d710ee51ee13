"""Tests for HTTP source adapters (RemoteOK, Greenhouse, RSS) and shared helpers."""

from datetime import UTC, datetime

import httpx
import pytest

from jobstream.core.config import Settings, SourceConfig
from jobstream.sources import available_sources, build_source, build_sources
from jobstream.sources.base import (
    extract_first_email,
    extract_locations,
    extract_salary,
    id_from_content,
    make_record_id,
    strip_html,
)
from jobstream.sources.greenhouse import GreenhouseSource
from jobstream.sources.remoteok import RemoteOKSource, format_salary
from jobstream.sources.rss import COMMON_FEEDS, RSSSource, company_from_title


def _client(handler) -> httpx.AsyncClient:  # type: ignore[no-untyped-def]
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_make_record_id(self) -> None:
        assert make_record_id("remoteok", 123) == "remoteok-123"

    def test_id_from_content_is_deterministic(self) -> None:
        a = id_from_content("rss", "https://x/1Rust Dev")
        assert a == id_from_content("rss", "https://x/1Rust Dev")
        assert a != id_from_content("rss", "https://x/2Rust Dev")
        assert a.startswith("rss-")
        assert len(a) == len("rss-") + 16

    def test_strip_html(self) -> None:
        html = "<p>Build <b>fast</b> APIs &amp; tools</p>\n<ul><li>Rust</li></ul>"
        assert strip_html(html) == "Build fast APIs & tools\nRust"

    def test_strip_html_keeps_bare_angle_brackets(self) -> None:
        assert strip_html("<p>Pay < 100k, bonus > 10k</p>") == "Pay < 100k, bonus > 10k"

    def test_strip_html_empty(self) -> None:
        assert strip_html("") == ""

    def test_extract_email(self) -> None:
        assert extract_first_email("Send CV to jobs@acme.io or hr@acme.io") == "jobs@acme.io"
        assert extract_first_email("no contact") == ""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Pay: $120k - $150k per year", "$120k - $150k per year"),
            ("Salary $90,000", "$90,000"),
            ("Range 60k-80k EUR annually", "60k-80k EUR annually"),
            ("Competitive pay", ""),
        ],
    )
    def test_extract_salary(self, text: str, expected: str) -> None:
        assert extract_salary(text) == expected

    def test_extract_locations(self) -> None:
        text = "Remote or hybrid from Austin, TX. Fully REMOTE possible."
        assert extract_locations(text) == ["Remote", "hybrid", "Austin, TX"]


# ---------------------------------------------------------------------------
# RemoteOK
# ---------------------------------------------------------------------------


_REMOTEOK_PAYLOAD = [
    {"legal": "metadata entry, not a job"},
    {
        "id": "1001",
        "slug": "rust-engineer-acme-1001",
        "position": "Rust Engineer",
        "company": "Acme",
        "description": "<p>Email <b>jobs@acme.io</b></p>",
        "location": "Worldwide",
        "tags": ["rust", "backend"],
        "salary_min": 120000,
        "salary_max": 150000,
        "epoch": 1735689600,
    },
    {
        "id": 1002,
        "position": "Go Developer",
        "company": "Beta",
        "location": ["Remote", "EU"],
        "salary_min": 90000,
        "url": "https://remoteok.com/remote-jobs/1002",
    },
    {"id": "1003", "position": ""},
]


class TestRemoteOK:
    async def test_parses_jobs_and_skips_metadata(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url == "https://remoteok.com/api"
            return httpx.Response(200, json=_REMOTEOK_PAYLOAD)

        async with _client(handler) as client:
            records = await RemoteOKSource(client=client).fetch()

        assert [r.id for r in records] == ["remoteok-1001", "remoteok-1002"]
        first, second = records
        assert first.source == "remoteok"
        assert first.url == "https://remoteok.com/remote-jobs/rust-engineer-acme-1001"
        assert first.salary == "$120k - $150k"
        assert first.job_type == "rust, backend"
        assert first.email == "jobs@acme.io"
        assert first.description == "Email jobs@acme.io"
        assert first.posted_at == datetime(2025, 1, 1, tzinfo=UTC)
        assert first.score == 50
        assert second.location == "Remote, EU"
        assert second.salary == "$90k+"
        assert second.posted_at is None

    async def test_http_error_raises(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await RemoteOKSource(client=client).fetch()

    async def test_non_list_payload_raises(self) -> None:
        async with _client(lambda request: httpx.Response(200, json={"error": 1})) as client:
            with pytest.raises(ValueError, match="unexpected"):
                await RemoteOKSource(client=client).fetch()

    @pytest.mark.parametrize(
        ("low", "high", "expected"),
        [
            (120000, 150000, "$120k - $150k"),
            (80000, 0, "$80k+"),
            (0, 70000, "up to $70k"),
            (0, 0, ""),
            (None, "bad", ""),
        ],
    )
    def test_format_salary(self, low: object, high: object, expected: str) -> None:
        assert format_salary(low, high) == expected


# ---------------------------------------------------------------------------
# Greenhouse
# ---------------------------------------------------------------------------


def _greenhouse_jobs(board: str) -> dict:
    return {
        "jobs": [
            {
                "id": 7,
                "title": f"Backend Engineer at {board}",
                "content": "&lt;p&gt;Pay $100k - $130k. Contact talent@corp.io&lt;/p&gt;",
                "absolute_url": f"https://boards.greenhouse.io/{board}/jobs/7",
                "updated_at": "2025-01-15T10:00:00-05:00",
                "location": {"name": "Remote - US"},
            },
        ],
    }


class TestGreenhouse:
    async def test_fetches_each_board(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            board = request.url.path.split("/")[3]
            seen.append(board)
            assert request.url.params["content"] == "true"
            return httpx.Response(200, json=_greenhouse_jobs(board))

        async with _client(handler) as client:
            source = GreenhouseSource(boards=["figma", "linear"], client=client, board_delay=0)
            records = await source.fetch()

        assert seen == ["figma", "linear"]
        assert [r.id for r in records] == ["greenhouse-figma-7", "greenhouse-linear-7"]
        r = records[0]
        assert r.company == "figma"
        assert r.location == "Remote - US"
        assert r.description == "Pay $100k - $130k. Contact talent@corp.io"
        assert r.salary == "$100k - $130k"
        assert r.email == "talent@corp.io"
        assert r.posted_at is not None
        assert r.posted_at.utcoffset() is not None

    async def test_failed_board_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "broken" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(200, json=_greenhouse_jobs("ok"))

        async with _client(handler) as client:
            source = GreenhouseSource(boards=["broken", "ok"], client=client, board_delay=0)
            records = await source.fetch()
        assert [r.company for r in records] == ["ok"]

    async def test_all_boards_failed_raises(self) -> None:
        async with _client(lambda request: httpx.Response(500)) as client:
            source = GreenhouseSource(boards=["a", "b"], client=client, board_delay=0)
            with pytest.raises(RuntimeError, match="all Greenhouse boards failed"):
                await source.fetch()

    def test_requires_boards(self) -> None:
        with pytest.raises(ValueError):
            GreenhouseSource(boards=[])


# ---------------------------------------------------------------------------
# RSS
# ---------------------------------------------------------------------------


_FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Jobs</title>
<item>
  <title>Senior Rust Engineer at Ferrous Systems</title>
  <link>https://rustjobs.dev/jobs/1</link>
  <description>&lt;p&gt;Remote. $140k - $170k. Apply: hire@ferrous.io&lt;/p&gt;</description>
  <pubDate>Wed, 15 Jan 2025 10:00:00 +0000</pubDate>
</item>
<item>
  <title>Acme - Backend Developer</title>
  <link>https://rustjobs.dev/jobs/2</link>
  <description>Berlin, DE office</description>
</item>
</channel></rss>"""


class TestRSS:
    async def test_parses_items(self) -> None:
        async with _client(lambda request: httpx.Response(200, text=_FEED)) as client:
            records = await RSSSource("rustjobs", "https://rustjobs.dev/feed.xml", client=client).fetch()

        assert len(records) == 2
        first, second = records
        assert first.id == id_from_content("rustjobs", "https://rustjobs.dev/jobs/1" + first.title)
        assert first.company == "Ferrous Systems"
        assert first.location == "Remote"
        assert first.salary == "$140k - $170k"
        assert first.email == "hire@ferrous.io"
        assert first.posted_at == datetime(2025, 1, 15, 10, 0, tzinfo=UTC)
        assert second.company == "Acme"
        assert second.location == "Berlin, DE"
        # undated items count as fetched now
        assert second.posted_at is not None

    async def test_ids_stable_across_fetches(self) -> None:
        async with _client(lambda request: httpx.Response(200, text=_FEED)) as client:
            source = RSSSource("rustjobs", "https://rustjobs.dev/feed.xml", client=client)
            first = [r.id for r in await source.fetch()]
            second = [r.id for r in await source.fetch()]
        assert first == second

    async def test_garbage_raises(self) -> None:
        async with _client(lambda request: httpx.Response(200, text="<<<not xml")) as client:
            with pytest.raises(ValueError, match="unparseable"):
                await RSSSource("x", "https://x/feed", client=client).fetch()

    def test_url_required(self) -> None:
        with pytest.raises(ValueError, match="needs a url"):
            RSSSource("x", "")

    @pytest.mark.parametrize(
        ("title", "company"),
        [
            ("Rust Engineer at Acme", "Acme"),
            ("Acme - Rust Engineer", "Acme"),
            ("Rust Engineer", ""),
        ],
    )
    def test_company_from_title(self, title: str, company: str) -> None:
        assert company_from_title(title) == company


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_available(self) -> None:
        assert available_sources() == ["browser", "greenhouse", "remoteok", "rss"]

    def test_build_sources_in_order(self) -> None:
        settings = Settings(sources=[
            SourceConfig(type="greenhouse", options={"boards": ["figma"]}),
            SourceConfig(type="remoteok", enabled=False),
            SourceConfig(type="rss", name="rustjobs"),
            SourceConfig(type="rss", name="mine", options={"url": "https://example.com/rss"}),
        ])
        sources = build_sources(settings)
        assert [s.name for s in sources] == ["greenhouse", "rustjobs", "mine"]
        assert isinstance(sources[0], GreenhouseSource)
        assert isinstance(sources[1], RSSSource)
        assert sources[1].url == COMMON_FEEDS["rustjobs"]

    def test_rss_without_url_rejected(self) -> None:
        settings = Settings(sources=[SourceConfig(type="rss", name="unknown-feed")])
        with pytest.raises(ValueError, match="needs a url"):
            build_source(settings.sources[0], settings)

    def test_remoteok_timeout_from_settings(self) -> None:
        settings = Settings.model_validate({
            "aggregator": {"source_timeout": 12, "run_timeout": 60},
            "sources": [{"type": "remoteok"}],
        })
        source = build_source(settings.sources[0], settings)
        assert isinstance(source, RemoteOKSource)
        assert source._timeout == 12


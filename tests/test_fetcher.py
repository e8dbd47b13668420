import asyncio

import httpx
import pytest

from lotto_ledger.config import SourceSettings
from lotto_ledger.errors import FetchError
from lotto_ledger.fetcher import HttpFetcher, unwrap_html

URL = "https://www.lotteryusa.com/_components/GameHistory?page=2"


def _get(statuses):
    calls = []

    def handler(request):
        status = statuses[min(len(calls), len(statuses) - 1)]
        calls.append(status)
        return httpx.Response(status, text="<table></table>")

    async def run():
        settings = SourceSettings(prefix="CA", http_retries=3, enable_browser=False)
        async with HttpFetcher(settings, "tests", transport=httpx.MockTransport(handler), backoff=0) as fetcher:
            return await fetcher.get_text(URL)

    return run, calls


def test_client_error_fails_without_retry():
    run, calls = _get([404])

    with pytest.raises(FetchError) as excinfo:
        asyncio.run(run())

    assert calls == [404]
    assert excinfo.value.url == URL


def test_server_errors_are_retried_until_success():
    run, calls = _get([503, 502, 200])

    assert asyncio.run(run()) == "<table></table>"
    assert calls == [503, 502, 200]


def test_rate_limit_is_retried_then_gives_up():
    run, calls = _get([429])

    with pytest.raises(FetchError):
        asyncio.run(run())

    assert calls == [429, 429, 429]


def test_unwrap_html_envelope():
    assert unwrap_html('{"html": "<tr></tr>"}') == "<tr></tr>"
    assert unwrap_html('{"rows": 3}') == '{"rows": 3}'
    assert unwrap_html("<div>{}</div>") == "<div>{}</div>"

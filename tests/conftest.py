import asyncio
from types import SimpleNamespace

import pytest
from scrapy.http import HtmlResponse, Request
from scrapy.settings import Settings


def make_response(url, body, status=200, **meta):
    """Build an ``HtmlResponse`` for *url* whose request carries *meta*."""
    return HtmlResponse(
        url=url,
        body=body.encode("utf-8"),
        encoding="utf-8",
        status=status,
        request=Request(url, meta=meta),
    )


def make_crawler(settings=None):
    """Minimal crawler for ``Spider.from_crawler``: settings and a signal manager that ignores connects."""
    return SimpleNamespace(
        settings=Settings(settings or {}),
        signals=SimpleNamespace(connect=lambda *args, **kwargs: None),
        stats=None,
    )


def collect(agen):
    """Drain an async generator (e.g. a spider callback) into a list."""
    async def _drain():
        return [result async for result in agen]
    return asyncio.run(_drain())


@pytest.fixture(autouse=True)
def _reset_json_pipeline():
    from equipment_inventory_scraper.pipelines import JsonReportPipeline

    JsonReportPipeline._records = []
    JsonReportPipeline._spiders_done = 0
    JsonReportPipeline._spiders_expected = 1
    JsonReportPipeline._output_path = "inventory.json"
    JsonReportPipeline.last_run_count = None
    yield

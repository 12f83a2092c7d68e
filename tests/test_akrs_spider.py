import asyncio
from types import SimpleNamespace

import pytest
import scrapy
from scrapy.spidermiddlewares.httperror import HttpError
from twisted.python.failure import Failure

from conftest import collect, make_crawler, make_response

from equipment_inventory_scraper import spiders as base
from equipment_inventory_scraper.items import DetailFields, EquipmentItem
from equipment_inventory_scraper.spiders.akrs import AkrsSpider

BASE_URL = "https://www.akrs.com/en-us/used-equipment"


def _tile(n):
    return f"""
    <div class="s-product-tile">
      <div class="product-tile">
        <img class="tile-image" data-src="/images/{n}.jpg">
        <div class="product-brand">John Deere</div>
        <div class="pdp-link"><a href="/en-us/tractors/8r/{n}.html">2021 8R 410 - {n}</a></div>
        <div class="price"><span class="sales">Starting at $312,000</span></div>
        <span class="equipment-type-badge">Used</span>
      </div>
    </div>"""


def _listing(count, page=0):
    body = "<html><body>" + "".join(_tile(1000 + page * 100 + i) for i in range(count)) + "</body></html>"
    return make_response(f"{BASE_URL}?sz=12", body, page=page)


DETAIL_HTML = """
<html><body>
  <div class="product-information-row">
    <span class="product-information-label">Location</span>
    <span class="product-information-value">Gretna, NE</span>
  </div>
  <div class="product-information-row">
    <span class="product-information-label">Hours</span>
    <span class="product-information-value"> 1,204 </span>
  </div>
</body></html>"""


def _spider(monkeypatch, download=None, **kwargs):
    spider = AkrsSpider(url=BASE_URL, source="used", **kwargs)
    spider.page_delay = 0
    spider.detail_batch_delay = 0

    async def default_download(request):
        return make_response(request.url, DETAIL_HTML)

    monkeypatch.setattr(base, "maybe_deferred_to_future", lambda d: d)
    spider.crawler = SimpleNamespace(
        engine=SimpleNamespace(download=download or default_download),
        stats=None,
    )
    return spider


def test_source_is_required():
    with pytest.raises(ValueError):
        AkrsSpider(url=BASE_URL)
    with pytest.raises(ValueError):
        AkrsSpider(url=BASE_URL, source="marketplace")


def test_default_ceiling_depends_on_source():
    assert AkrsSpider(url=BASE_URL, source="new").max_pages == 50
    assert AkrsSpider(url=BASE_URL, source="used").max_pages == 80
    assert AkrsSpider(url=BASE_URL, source="used", max_pages="3").max_pages == 3


def test_page_url():
    spider = AkrsSpider(url=BASE_URL + "?start=48&pmin=1", source="used")
    assert spider.page_url(0) == BASE_URL + "?pmin=1&sz=12"
    assert spider.page_url(2) == BASE_URL + "?pmin=1&sz=12&start=24"


def test_extract_tiles():
    spider = AkrsSpider(url=BASE_URL, source="used")
    tiles = spider.extract_tiles(_listing(2))

    assert len(tiles) == 2
    tile = tiles[0]
    assert tile.name == "2021 8R 410 - 1000"
    assert tile.brand == "John Deere"
    assert tile.price == "Starting at $312,000"
    assert tile.badges == ["Used"]
    assert tile.detail_url == "/en-us/tractors/8r/1000.html"
    assert tile.image_url == "/images/1000.jpg"


def test_short_page_yields_enriched_items_and_stops(monkeypatch):
    spider = _spider(monkeypatch)
    results = collect(spider.parse_listing(_listing(5)))

    assert len(results) == 5
    assert all(isinstance(r, EquipmentItem) for r in results)
    item = results[0]
    assert item["product_id"] == "1000"
    assert item["location"] == "GRETNA"
    assert item["hours"] == "1,204"
    assert item["category"] == "tractors"
    assert item["detail_url"] == "https://www.akrs.com/en-us/tractors/8r/1000.html"
    assert [r["product_id"] for r in results] == ["1000", "1001", "1002", "1003", "1004"]


def test_full_page_requests_next_page(monkeypatch):
    spider = _spider(monkeypatch)
    results = collect(spider.parse_listing(_listing(12)))

    items = [r for r in results if isinstance(r, EquipmentItem)]
    requests = [r for r in results if isinstance(r, scrapy.Request)]
    assert len(items) == 12
    assert len(requests) == 1
    assert requests[0].meta["page"] == 1
    assert "start=12" in requests[0].url
    # next page comes after every item of this page
    assert results[-1] is requests[0]


def test_page_ceiling_stops_crawl(monkeypatch):
    spider = _spider(monkeypatch, max_pages=1)
    results = collect(spider.parse_listing(_listing(12)))

    assert len(results) == 12
    assert not any(isinstance(r, scrapy.Request) for r in results)
    assert spider.ceiling_reached


def test_empty_page_ends_crawl(monkeypatch):
    spider = _spider(monkeypatch)
    assert collect(spider.parse_listing(_listing(0))) == []
    assert spider.pages_fetched == 1


def test_detail_failures_leave_fields_unknown(monkeypatch):
    async def failing_download(request):
        if request.url.endswith("1001.html"):
            raise TimeoutError("took too long")
        if request.url.endswith("1002.html"):
            return make_response(request.url, "<html></html>", status=404)
        return make_response(request.url, DETAIL_HTML)

    spider = _spider(monkeypatch, download=failing_download)
    results = collect(spider.parse_listing(_listing(3)))

    assert [r["location"] for r in results] == ["GRETNA", "", ""]
    assert [r["hours"] for r in results] == ["1,204", None, None]


def test_detail_request_is_not_retried(monkeypatch):
    seen = []

    async def recording_download(request):
        seen.append(request)
        return make_response(request.url, DETAIL_HTML)

    spider = _spider(monkeypatch)
    spider.crawler.engine = SimpleNamespace(download_async=recording_download)
    spider.detail_timeout = 7
    item = EquipmentItem(detail_url="https://www.akrs.com/en-us/tractors/8r/1.html")

    detail = asyncio.run(spider.fetch_detail(item))

    assert detail == DetailFields(location="Gretna, NE", hours="1,204")
    assert seen[0].meta["dont_retry"] is True
    assert seen[0].meta["download_timeout"] == 7


def test_start_requests_first_page():
    spider = AkrsSpider(url=BASE_URL, source="new")
    requests = collect(spider.start())
    assert len(requests) == 1
    assert requests[0].url == BASE_URL + "?sz=12"
    assert requests[0].meta["page"] == 0


def _listing_failure(exc, page):
    failure = Failure(exc)
    failure.request = scrapy.Request(f"{BASE_URL}?sz=12&start={page * 12}", meta={"page": page})
    return failure


def test_listing_timeout_ends_crawl_and_keeps_items(monkeypatch, caplog):
    spider = _spider(monkeypatch)
    first_page = collect(spider.parse_listing(_listing(12)))
    [next_request] = [r for r in first_page if isinstance(r, scrapy.Request)]

    with caplog.at_level("WARNING"):
        result = next_request.errback(_listing_failure(TimeoutError("timed out"), page=1))

    assert result is None
    assert spider.items_yielded == 12
    assert "Request failed on" in caplog.text
    assert "timed out" in caplog.text
    assert "Listing page 1 failed" in caplog.text
    assert "ending crawl with 12 items" in caplog.text


def test_listing_http_error_is_logged_with_status(monkeypatch, caplog):
    spider = _spider(monkeypatch)
    response = make_response(f"{BASE_URL}?sz=12&start=24", "<html>Service Unavailable</html>", status=503)

    with caplog.at_level("WARNING"):
        result = spider.errback(_listing_failure(HttpError(response, "Ignoring non-200 response"), page=2))

    assert result is None
    assert "HTTP 503" in caplog.text
    assert "Service Unavailable" in caplog.text
    assert "Listing page 2 failed" in caplog.text


def test_page_delay_comes_from_settings():
    crawler = make_crawler({"LISTING_PAGE_DELAY": 0.25})
    spider = AkrsSpider.from_crawler(crawler, url=BASE_URL, source="used")
    assert spider.page_delay == 0.25

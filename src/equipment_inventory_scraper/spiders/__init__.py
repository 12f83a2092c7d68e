"""Shared utilities and the paginated base spider for all inventory sources."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import urlparse

import scrapy
from scrapy.http import HtmlResponse, TextResponse
from scrapy.spidermiddlewares.httperror import HttpError
from scrapy.utils.defer import maybe_deferred_to_future

from equipment_inventory_scraper.batching import process_in_batches
from equipment_inventory_scraper.items import DetailFields, EquipmentItem, RawTile, Source
from equipment_inventory_scraper.parsing_helpers import (
    apply_detail,
    normalize_tile,
    parse_detail_fields,
)


def log_request_failure(
    failure,
    domain: str,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> None:
    """Log a Scrapy request failure with useful detail.

    For HTTP errors the status code, URL, and first 500 characters of the
    response body are included.  For all other failures (DNS, timeout, …)
    the URL and exception message are logged.
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    request = failure.request

    if failure.check(HttpError):
        response = failure.value.response
        logger.error(
            "[%s] HTTP %d on %s — body: %.500s",
            domain,
            response.status,
            request.url,
            response.text,
        )
    else:
        logger.error(
            "[%s] Request failed on %s: %s",
            domain,
            request.url,
            failure.value,
        )


class PaginatedInventorySpider(scrapy.Spider):
    """Base spider that walks numbered listing pages one at a time.

    Subclasses provide the site adapter:

    * :meth:`page_url`: URL of listing page *n*;
    * :meth:`extract_tiles`: the :class:`RawTile` list on a listing page;
    * :meth:`extract_detail_labels`: label → value pairs on a detail page
      (only when :attr:`fetches_details` is true);
    * optionally :meth:`has_next_page`, :meth:`keep_item` and :meth:`listing_meta`.

    For each listing page the spider normalises every tile, enriches the
    resulting items from their detail pages in bounded batches, yields the
    items in tile order and then decides whether to continue:

    * no tiles: end of results;
    * fewer tiles than :attr:`page_size`: this was the last page;
    * :meth:`has_next_page` is false: no further pages;
    * :attr:`max_pages` pages fetched: safety ceiling, logged as an anomaly.

    Otherwise it waits :attr:`page_delay` seconds and requests the next
    page.  A failed listing request ends the crawl; everything yielded so
    far is kept.
    """

    source: Source
    # Source catalogs this spider can harvest; more than one means the
    # ``source`` argument picks which.
    sources: tuple[Source, ...] = ()
    page_size: int = 12
    max_pages: int = 50
    first_page: int = 0
    fetches_details: bool = True

    # Overridden from settings in ``from_crawler``.
    page_delay: float = 2.0
    page_delay_setting: str = "LISTING_PAGE_DELAY"
    detail_batch_size: int = 10
    detail_batch_delay: float = 0.5
    detail_timeout: float = 10
    listing_timeout: float = 30
    debug_html_dir: str | None = None

    # Passed via ``-a url=…`` or the CLI wrapper.
    def __init__(
        self,
        url: str | None = None,
        label: str | None = None,
        max_pages: int | str | None = None,
        page_size: int | str | None = None,
        *args,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        if url is None:
            raise ValueError(
                "A starting URL is required. "
                f"Pass it with: -a url=https://example.com/… (spider={self.name})"
            )
        self.start_url = url
        self.label = label
        self._domain = urlparse(url).netloc
        if max_pages is not None:
            self.max_pages = int(max_pages)
        if page_size is not None:
            self.page_size = int(page_size)
        if self.max_pages < 1 or self.page_size < 1:
            raise ValueError("max_pages and page_size must both be at least 1")

        self.pages_fetched = 0
        self.items_yielded = 0
        self.ceiling_reached = False

    @classmethod
    def from_crawler(cls, crawler, *args, **kwargs):
        spider = super().from_crawler(crawler, *args, **kwargs)
        settings = crawler.settings
        spider.page_delay = settings.getfloat(spider.page_delay_setting, spider.page_delay)
        spider.detail_batch_size = settings.getint("DETAIL_BATCH_SIZE", spider.detail_batch_size)
        spider.detail_batch_delay = settings.getfloat("DETAIL_BATCH_DELAY", spider.detail_batch_delay)
        spider.detail_timeout = settings.getfloat("DETAIL_TIMEOUT", spider.detail_timeout)
        spider.listing_timeout = settings.getfloat("LISTING_TIMEOUT", spider.listing_timeout)
        spider.debug_html_dir = settings.get("DEBUG_HTML_DIR") or None
        return spider

    # ------------------------------------------------------------------
    # Site adapter hooks
    # ------------------------------------------------------------------

    def page_url(self, page: int) -> str:
        raise NotImplementedError

    def extract_tiles(self, response: HtmlResponse) -> list[RawTile]:
        raise NotImplementedError

    def extract_detail_labels(self, response: HtmlResponse) -> dict[str, str]:
        return {}

    def keep_item(self, item: EquipmentItem) -> bool:
        return True

    def has_next_page(self, response: HtmlResponse) -> bool:
        return True

    def listing_meta(self, page: int) -> dict:
        return {}

    # ------------------------------------------------------------------
    # Listing pages
    # ------------------------------------------------------------------

    async def start(self):
        yield self.listing_request(self.first_page)

    def listing_request(self, page: int, **meta) -> scrapy.Request:
        return scrapy.Request(
            self.page_url(page),
            meta={
                "page": page,
                "download_timeout": self.listing_timeout,
                **self.listing_meta(page),
                **meta,
            },
            callback=self.parse_listing,
            errback=self.errback,
            dont_filter=True,
        )

    async def parse_listing(self, response: HtmlResponse):
        """Turn one listing page into enriched items, then follow the next page."""
        page = response.meta.get("page", self.first_page)
        self.pages_fetched += 1
        self._inc_stat("inventory/pages_fetched")
        if page == self.first_page:
            self._dump_debug_html(response)

        tiles = self.extract_tiles(response)
        self.logger.info(
            "[%s] Found %d tiles on page %d (%s)",
            self._domain, len(tiles), page, response.url,
        )
        if not tiles:
            self.logger.info("[%s] No tiles on page %d — end of results", self._domain, page)
            return

        items = [normalize_tile(tile, self.source, response.url) for tile in tiles]
        items = [item for item in items if self.keep_item(item)]

        if self.fetches_details:
            details = await process_in_batches(
                items,
                self.fetch_detail,
                batch_size=self.detail_batch_size,
                delay=self.detail_batch_delay,
            )
            for n, (item, detail) in enumerate(zip(items, details), 1):
                apply_detail(item, detail or DetailFields())
                self.logger.debug(
                    "[%s] [%d/%d] %s - %s%s",
                    self._domain, n, len(items), item.get("product_name"),
                    item.get("location") or "?",
                    f" ({item['hours']} hrs)" if item.get("hours") else "",
                )

        for item in items:
            self.items_yielded += 1
            yield item

        self.logger.info(
            "[%s] Page %d complete (%d items so far)",
            self._domain, page, self.items_yielded,
        )

        if len(tiles) < self.page_size:
            self.logger.info(
                "[%s] Page %d returned %d of %d tiles — last page",
                self._domain, page, len(tiles), self.page_size,
            )
            return
        if not self.has_next_page(response):
            self.logger.info("[%s] No next-page link on page %d", self._domain, page)
            return
        if page - self.first_page + 1 >= self.max_pages:
            self.ceiling_reached = True
            self._set_stat("inventory/page_ceiling_reached", True)
            self.logger.warning(
                "[%s] Stopped at the %d-page ceiling while pages were still full; "
                "results may be incomplete",
                self._domain, self.max_pages,
            )
            return

        if self.page_delay:
            await asyncio.sleep(self.page_delay)
        yield self.listing_request(page + 1)

    # ------------------------------------------------------------------
    # Detail pages
    # ------------------------------------------------------------------

    async def fetch_detail(self, item: EquipmentItem) -> DetailFields:
        """Fetch *item*'s detail page and read its enrichment fields.

        One attempt with :attr:`detail_timeout`; any failure returns an
        empty :class:`DetailFields`.
        """
        url = item.get("detail_url")
        if not url:
            return DetailFields()

        request = scrapy.Request(
            url,
            meta={"download_timeout": self.detail_timeout, "dont_retry": True},
            dont_filter=True,
        )
        engine = self.crawler.engine
        try:
            if hasattr(engine, "download_async"):
                response = await engine.download_async(request)
            else:
                response = await maybe_deferred_to_future(engine.download(request))
        except Exception as exc:
            self.logger.warning("[%s] Detail fetch failed on %s: %s", self._domain, url, exc)
            self._inc_stat("inventory/detail_failures")
            return DetailFields()

        if response.status >= 300 or not isinstance(response, TextResponse):
            self.logger.warning(
                "[%s] Detail fetch got HTTP %d on %s", self._domain, response.status, url,
            )
            self._inc_stat("inventory/detail_failures")
            return DetailFields()

        detail = parse_detail_fields(self.extract_detail_labels(response))
        if not detail.location:
            self.logger.debug("[%s] No location on detail page %s", self._domain, url)
        return detail

    # ------------------------------------------------------------------
    # Error handler / helpers
    # ------------------------------------------------------------------

    def errback(self, failure):
        log_request_failure(failure, self._domain, self.logger)
        page = failure.request.meta.get("page")
        self.logger.warning(
            "[%s] Listing page %s failed — ending crawl with %d items",
            self._domain, page, self.items_yielded,
        )

    def closed(self, reason):
        self.logger.info(
            "[%s] %s crawl finished (%s): %d pages, %d items%s",
            self._domain, Source(self.source).label, reason,
            self.pages_fetched, self.items_yielded,
            ", page ceiling reached" if self.ceiling_reached else "",
        )

    def _dump_debug_html(self, response: HtmlResponse) -> None:
        if not self.debug_html_dir:
            return
        path = Path(self.debug_html_dir) / f"debug-{self.name}-{Source(self.source).value}.html"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(response.body)
        self.logger.info("[%s] Saved first listing page to %s", self._domain, path)

    def _inc_stat(self, key: str) -> None:
        crawler = getattr(self, "crawler", None)
        if crawler is not None and crawler.stats is not None:
            crawler.stats.inc_value(key)

    def _set_stat(self, key: str, value) -> None:
        crawler = getattr(self, "crawler", None)
        if crawler is not None and crawler.stats is not None:
            crawler.stats.set_value(key, value)

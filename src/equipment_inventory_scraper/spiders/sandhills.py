"""Spider for the Sandhills-hosted used-equipment marketplace.

The marketplace is a JavaScript application behind a bot check, so
listing pages are rendered through scrapy-playwright with stealth patches.
Each page shows a couple dozen ``.listing-card`` elements.  Unlike the dealer
catalog, a card already carries everything needed (year/make/model title,
price, hours, serial and stock numbers, machine location), so no detail
pages are fetched.

Pages are numbered from 1 and selected with a ``Page`` query parameter.

Example usage::

    equipment-inventory-scraper crawl sandhills \\
        --url "https://www.akrsusedequipment.com/inventory/?/listings/for-sale/equipment/all?AccountCRMID=75&dlr=1"
"""

from __future__ import annotations

from scrapy.http import HtmlResponse
from scrapy_playwright.page import PageMethod

from equipment_inventory_scraper.items import EquipmentItem, RawTile, Source
from equipment_inventory_scraper.parsing_helpers import node_text
from equipment_inventory_scraper.spiders import PaginatedInventorySpider
from equipment_inventory_scraper.stealth import apply_stealth, is_bot_challenge

# Extra wait (ms) after the bot check before reading the page again.
_CHALLENGE_WAIT_MS = 5_000


class SandhillsSpider(PaginatedInventorySpider):
    """Scrape listings from the Sandhills-hosted used-equipment marketplace."""

    name = "sandhills"
    source = Source.MARKETPLACE
    sources = (Source.MARKETPLACE,)
    page_size = 20  # fewer cards than this means the last page
    page_delay = 3.0
    page_delay_setting = "MARKETPLACE_PAGE_DELAY"
    max_pages = 50
    first_page = 1
    fetches_details = False
    listing_timeout = 90

    _CARD_SELECTOR = ".list-listing-card-wrapper .list-listing.listing-card"

    # ------------------------------------------------------------------
    # Listing pages
    # ------------------------------------------------------------------

    def page_url(self, page: int) -> str:
        if page <= 1:
            return self.start_url
        sep = "&" if "?" in self.start_url else "?"
        return f"{self.start_url}{sep}Page={page}"

    def listing_meta(self, page: int) -> dict:
        return {
            "playwright": True,
            "playwright_page_init_callback": apply_stealth,
            "playwright_page_goto_kwargs": {"wait_until": "networkidle"},
            "playwright_page_methods": [
                PageMethod("wait_for_timeout", 2_000),
            ],
        }

    async def parse_listing(self, response: HtmlResponse):
        if is_bot_challenge(response):
            page = response.meta.get("page", self.first_page)
            if response.meta.get("challenge_retry"):
                self.logger.error(
                    "[%s] Still on the bot-check page for page %d — giving up",
                    self._domain, page,
                )
                return
            self.logger.warning(
                "[%s] Bot check on page %d; retrying with a longer wait", self._domain, page,
            )
            yield self.listing_request(
                page,
                challenge_retry=True,
                playwright_page_methods=[
                    PageMethod("wait_for_timeout", _CHALLENGE_WAIT_MS),
                ],
            )
            return

        async for result in super().parse_listing(response):
            yield result

    def extract_tiles(self, response: HtmlResponse) -> list[RawTile]:
        tiles = []
        for card in response.css(self._CARD_SELECTOR):
            specs = _specs(card)
            tiles.append(RawTile(
                name=(
                    node_text(card, "h2.listing-portion-title strong")
                    or node_text(card, ".list-listing-title-link strong")
                ),
                price=node_text(card, ".listing-image-price"),
                category=node_text(card, "p.listing-category"),
                detail_url=(
                    card.css(".list-listing-title-link::attr(href)").get()
                    or card.css('a[href*="/listing/for-sale/"]::attr(href)').get("")
                ),
                image_url=(
                    card.css("img.listing-main-image::attr(src)").get()
                    or card.css("img::attr(src)").get("")
                ),
                location=node_text(card, ".machine-location"),
                hours=specs.get("hours", ""),
                serial_number=specs.get("serial", ""),
                stock_number=specs.get("stock", ""),
                listing_id=card.attrib.get("data-listing-id", ""),
            ))
        return tiles

    def keep_item(self, item: EquipmentItem) -> bool:
        return bool(item.get("product_name") or item.get("make") or item.get("model"))

    def has_next_page(self, response: HtmlResponse) -> bool:
        if response.css('link[rel="next"]'):
            return True
        for button in response.css('button[aria-label*="page"]'):
            label = button.attrib.get("aria-label", "").lower()
            disabled = "disabled" in button.attrib or "Mui-disabled" in button.attrib.get("class", "")
            if "next" in label and not disabled:
                return True
        return False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _specs(card) -> dict[str, str]:
    """Read the ``.spec-container`` label/value pairs of a listing card.

    Returns a dict keyed by ``hours``, ``serial`` and ``stock`` (only the
    ones present).
    """
    specs: dict[str, str] = {}
    for spec in card.css(".spec-container"):
        label = node_text(spec, ".spec-label").lower().replace(":", "").strip()
        value = node_text(spec, ".spec-value")
        if "hour" in label:
            specs["hours"] = value
        elif "serial" in label:
            specs["serial"] = value
        elif "stock" in label:
            specs["stock"] = value
    return specs

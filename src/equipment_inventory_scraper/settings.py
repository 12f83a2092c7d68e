"""Scrapy settings for the equipment inventory scraper."""

BOT_NAME = "equipment_inventory_scraper"

SPIDER_MODULES = ["equipment_inventory_scraper.spiders"]
NEWSPIDER_MODULE = "equipment_inventory_scraper.spiders"

# --- Playwright integration ---
# Only requests with ``meta["playwright"] = True`` (the marketplace) are
# rendered in a browser; everything else goes through the plain HTTP handler.
DOWNLOAD_HANDLERS = {
    "http": "scrapy_playwright.handler.ScrapyPlaywrightDownloadHandler",
    "https": "scrapy_playwright.handler.ScrapyPlaywrightDownloadHandler",
}
TWISTED_REACTOR = "twisted.internet.asyncioreactor.AsyncioSelectorReactor"

PLAYWRIGHT_BROWSER_TYPE = "chromium"
PLAYWRIGHT_LAUNCH_OPTIONS = {
    "headless": True,
    "args": [
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
        "--no-sandbox",
    ],
}
# Block unnecessary resource types to speed up page loads
def PLAYWRIGHT_ABORT_REQUEST(req):
    return req.resource_type in ("image", "font", "media")
PLAYWRIGHT_CONTEXTS = {
    "default": {
        "viewport": {"width": 1920, "height": 1080},
        "ignore_https_errors": True,
        "user_agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        "extra_http_headers": {"Accept-Language": "en-US,en;q=0.9"},
    }
}
PLAYWRIGHT_PROCESS_REQUEST_HEADERS = None

# --- Plain HTTP requests (dealer catalog) ---
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# --- Polite crawling ---
# Listing pages are fetched one at a time with LISTING_PAGE_DELAY
# (MARKETPLACE_PAGE_DELAY for the marketplace) between them; detail pages
# are fetched DETAIL_BATCH_SIZE at a time with DETAIL_BATCH_DELAY between
# batches.  The downloader itself adds no delay.
ROBOTSTXT_OBEY = False
CONCURRENT_REQUESTS = 16
CONCURRENT_REQUESTS_PER_DOMAIN = 10
DOWNLOAD_DELAY = 0
LISTING_PAGE_DELAY = 2.0
MARKETPLACE_PAGE_DELAY = 3.0  # the browser-rendered marketplace is paced slower
DETAIL_BATCH_SIZE = 10
DETAIL_BATCH_DELAY = 0.5

# --- Timeouts & retries ---
LISTING_TIMEOUT = 30  # seconds; the marketplace spider raises its own
DETAIL_TIMEOUT = 10   # seconds; detail fetches are never retried
DOWNLOAD_TIMEOUT = 120  # Scrapy-level hard cap per request (seconds)
PLAYWRIGHT_DEFAULT_NAVIGATION_TIMEOUT = 60_000  # ms — Playwright page.goto()
PLAYWRIGHT_MAX_PAGES_PER_CONTEXT = 1
RETRY_TIMES = 2  # listing pages only: transient failures (timeouts, 5xx, etc.)
RETRY_HTTP_CODES = [500, 502, 503, 504, 408]

# --- Pipelines ---
ITEM_PIPELINES = {
    "equipment_inventory_scraper.pipelines.CleanTextPipeline": 100,
    "equipment_inventory_scraper.pipelines.TimestampPipeline": 200,
    "equipment_inventory_scraper.pipelines.JsonReportPipeline": 900,
}

# Default output path for the JSON data (override via CLI --output)
JSON_REPORT_PATH = "inventory.json"

# Directory for a copy of each crawl's first listing page (unset = off)
DEBUG_HTML_DIR = None

# --- Misc ---
LOG_LEVEL = "INFO"

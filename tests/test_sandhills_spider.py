import scrapy

from conftest import collect, make_crawler, make_response

from equipment_inventory_scraper.spiders.sandhills import SandhillsSpider

START_URL = "https://www.akrsusedequipment.com/inventory/?/listings/for-sale/equipment/all?dlr=1"


def _card(n, title="2025 JOHN DEERE 9RX 640", location="Machine Location: Gretna, Nebraska 68028"):
    return f"""
    <div class="list-listing-card-wrapper">
      <div class="list-listing listing-card" data-listing-id="{n}">
        <a class="list-listing-title-link" href="/listing/for-sale/{n}/tractor">
          <h2 class="listing-portion-title"><strong>{title}</strong></h2>
        </a>
        <img class="listing-main-image" src="https://img.example.com/{n}.jpg">
        <p class="listing-category">4WD Tractors</p>
        <span class="listing-image-price">USD $612,500</span>
        <div class="machine-location">{location}</div>
        <div class="spec-container"><span class="spec-label">Hours:</span><span class="spec-value">125</span></div>
        <div class="spec-container"><span class="spec-label">Serial Number:</span><span class="spec-value">RW9RX{n}</span></div>
        <div class="spec-container"><span class="spec-label">Stock Number:</span><span class="spec-value">S{n}</span></div>
      </div>
    </div>"""


def _spider():
    spider = SandhillsSpider(url=START_URL)
    spider.page_delay = 0
    return spider


def test_page_url():
    spider = _spider()
    assert spider.page_url(1) == START_URL
    assert spider.page_url(3) == START_URL + "&Page=3"


def test_listing_requests_are_rendered_with_stealth():
    spider = _spider()
    [request] = collect(spider.start())
    assert request.meta["playwright"] is True
    assert request.meta["page"] == 1
    assert request.meta["download_timeout"] == 90
    assert callable(request.meta["playwright_page_init_callback"])


def test_extract_tiles_reads_card_fields():
    spider = _spider()
    response = make_response(START_URL, "<html><body>" + _card(42) + "</body></html>", page=1)
    [tile] = spider.extract_tiles(response)

    assert tile.name == "2025 JOHN DEERE 9RX 640"
    assert tile.price == "USD $612,500"
    assert tile.category == "4WD Tractors"
    assert tile.detail_url == "/listing/for-sale/42/tractor"
    assert tile.location == "Machine Location: Gretna, Nebraska 68028"
    assert tile.hours == "125"
    assert tile.serial_number == "RW9RX42"
    assert tile.stock_number == "S42"
    assert tile.listing_id == "42"


def test_parse_listing_without_detail_fetches():
    spider = _spider()
    body = "<html><body>" + _card(1) + _card(2, title="") + _card(3, location="Kearney, NE") + "</body></html>"
    results = collect(spider.parse_listing(make_response(START_URL, body, page=1)))

    # the untitled card is dropped; the short page ends the crawl
    assert len(results) == 2
    first = results[0]
    assert first["source"] == "marketplace"
    assert (first["year"], first["make"], first["model"]) == ("2025", "JOHN DEERE", "9RX 640")
    assert first["price"] == "$612,500"
    assert first["location"] == "GRETNA"
    assert first["detail_url"] == "https://www.akrsusedequipment.com/listing/for-sale/1/tractor"
    assert results[1]["location"] == "KEARNEY"


def test_full_page_without_next_link_stops():
    spider = _spider()
    body = "<html><body>" + "".join(_card(i) for i in range(28)) + "</body></html>"
    results = collect(spider.parse_listing(make_response(START_URL, body, page=1)))
    assert len(results) == 28
    assert not any(isinstance(r, scrapy.Request) for r in results)


def test_full_page_with_next_button_continues():
    spider = _spider()
    body = (
        "<html><body>"
        + "".join(_card(i) for i in range(28))
        + '<button aria-label="Go to next page">&gt;</button>'
        + "</body></html>"
    )
    results = collect(spider.parse_listing(make_response(START_URL, body, page=1)))
    requests = [r for r in results if isinstance(r, scrapy.Request)]
    assert len(requests) == 1
    assert requests[0].url == START_URL + "&Page=2"


def test_has_next_page():
    spider = _spider()

    def page(extra):
        return make_response(START_URL, f"<html><head></head><body>{extra}</body></html>")

    assert spider.has_next_page(page('<link rel="next" href="?Page=2">'))
    assert spider.has_next_page(page('<button aria-label="Go to next page"></button>'))
    assert not spider.has_next_page(page('<button aria-label="Go to next page" disabled></button>'))
    assert not spider.has_next_page(page('<button class="Mui-disabled" aria-label="Go to next page"></button>'))
    assert not spider.has_next_page(page(""))


def test_bot_challenge_is_retried_once():
    spider = _spider()
    challenge = "<html><head><title>Pardon Our Interruption</title></head><body></body></html>"

    [retry] = collect(spider.parse_listing(make_response(START_URL, challenge, page=1)))
    assert isinstance(retry, scrapy.Request)
    assert retry.meta["challenge_retry"] is True
    assert retry.meta["page"] == 1

    again = make_response(START_URL, challenge, page=1, challenge_retry=True)
    assert collect(spider.parse_listing(again)) == []


def test_part_full_page_with_next_button_continues():
    spider = _spider()
    body = (
        "<html><body>"
        + "".join(_card(i) for i in range(24))
        + '<button aria-label="Go to next page">&gt;</button>'
        + "</body></html>"
    )
    results = collect(spider.parse_listing(make_response(START_URL, body, page=1)))

    requests = [r for r in results if isinstance(r, scrapy.Request)]
    assert len(results) == 25
    assert len(requests) == 1
    assert requests[0].meta["page"] == 2


def test_page_with_fewer_than_20_cards_is_last():
    spider = _spider()
    body = (
        "<html><body>"
        + "".join(_card(i) for i in range(19))
        + '<button aria-label="Go to next page">&gt;</button>'
        + "</body></html>"
    )
    results = collect(spider.parse_listing(make_response(START_URL, body, page=1)))
    assert len(results) == 19
    assert not any(isinstance(r, scrapy.Request) for r in results)


def test_marketplace_has_its_own_page_delay():
    spider = SandhillsSpider.from_crawler(make_crawler(), url=START_URL)
    assert spider.page_delay == 3.0

    crawler = make_crawler({"LISTING_PAGE_DELAY": 9.0, "MARKETPLACE_PAGE_DELAY": 1.5})
    spider = SandhillsSpider.from_crawler(crawler, url=START_URL)
    assert spider.page_delay == 1.5

"""CrawlWindow: tests for windowed pagination over synthetic sources."""

import asyncio

import pytest

from fanout_crawl.config import CrawlConfig
from fanout_crawl.errors import InvalidState, MandatoryFetchFailure, TransportFailure
from fanout_crawl.pipeline import (
    CrawlWindow,
    PageExtent,
    PageSource,
    PageWindow,
    create_waitable,
    crawl_window,
    resolve_page_count,
)


class SyntheticSource(PageSource):
    """In-memory paginated source.

    ``pages`` maps page index -> list of items; indexes beyond it yield [].
    """

    name = "synthetic"

    def __init__(self, pages, extent=None, failing=(), broken=(), delay=0.0):
        self.pages = pages
        self.extent = extent or PageExtent()
        self.failing = set(failing)
        self.broken = set(broken)
        self.delay = delay
        self.fetched = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def fetch_page(self, index):
        self.fetched.append(index)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if index in self.failing:
                raise TransportFailure(f"https://example.test/list/{index}", status=503)
            return {"index": index, "items": list(self.pages.get(index, []))}
        finally:
            self.in_flight -= 1

    def extract_items(self, document, index):
        if index in self.broken:
            raise KeyError("items")
        return document["items"]

    def extract_extent(self, document):
        return self.extent


def one_item_pages(count):
    return {i: [f"item-{i}"] for i in range(1, count + 1)}


# ---------------------------------------------------------------------------
# Page count resolution
# ---------------------------------------------------------------------------

def test_last_page_wins_over_total_count():
    assert resolve_page_count(PageExtent(total_count=1000, last_page=7), 30) == 7


def test_page_count_from_total_count():
    assert resolve_page_count(PageExtent(total_count=65), 30) == 3
    assert resolve_page_count(PageExtent(total_count=60), 30) == 2


def test_page_count_unknown_without_signals():
    assert resolve_page_count(PageExtent(), 30) is None


def test_window_is_clipped_to_known_pages():
    window = PageWindow(start_index=9, batch_size=4, total_known=10)
    assert window.next_batch() == [9, 10]
    window.advance(10)
    assert window.exhausted


# ---------------------------------------------------------------------------
# Known extent
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_known_extent_is_fetched_in_windows(recorder):
    source = SyntheticSource(one_item_pages(10), extent=PageExtent(last_page=10))
    config = CrawlConfig(window_size=4, first_page=1)

    result = await CrawlWindow(source, config=config, observer=recorder).run()

    assert result.page_count == 10
    assert result.batches == [[2, 3, 4, 5], [6, 7, 8, 9], [10]]
    assert len(source.fetched) == 10
    assert result.items == [f"item-{i}" for i in range(1, 11)]
    assert not recorder.partial


@pytest.mark.asyncio
async def test_pages_in_a_batch_are_fetched_concurrently(recorder):
    source = SyntheticSource(one_item_pages(9), extent=PageExtent(last_page=9), delay=0.005)

    await CrawlWindow(source, config=CrawlConfig(window_size=4), observer=recorder).run()

    assert source.peak_in_flight == 4


@pytest.mark.asyncio
async def test_failed_page_is_dropped_without_aborting(recorder):
    source = SyntheticSource(one_item_pages(10), extent=PageExtent(last_page=10), failing={3})

    result = await CrawlWindow(source, config=CrawlConfig(window_size=4), observer=recorder).run()

    assert len(result.items) == 9
    assert result.items == [f"item-{i}" for i in (1, 2, 4, 5, 6, 7, 8, 9, 10)]
    assert result.failed_pages == [3]
    diagnostics = recorder.by_phase("page")
    assert len(diagnostics) == 1
    assert diagnostics[0].operation_id == "synthetic:3"
    assert diagnostics[0].error_kind == "TransportFailure"


@pytest.mark.asyncio
async def test_within_page_order_is_kept(recorder):
    pages = {1: ["a", "b"], 2: ["c", "d", "e"], 3: ["f"]}
    source = SyntheticSource(pages, extent=PageExtent(last_page=3), delay=0.001)

    result = await CrawlWindow(source, config=CrawlConfig(window_size=2), observer=recorder).run()

    assert result.items == ["a", "b", "c", "d", "e", "f"]


@pytest.mark.asyncio
async def test_page_count_derived_from_total(recorder):
    pages = {i: [f"{i}-{j}" for j in range(10)] for i in range(1, 11)}
    pages[10] = pages[10][:5]
    source = SyntheticSource(pages, extent=PageExtent(total_count=95))

    result = await CrawlWindow(
        source, config=CrawlConfig(window_size=4, page_size=10), observer=recorder
    ).run()

    assert result.page_count == 10
    assert len(result.items) == 95


@pytest.mark.asyncio
async def test_whole_batch_failure_with_known_extent_is_data_loss(recorder):
    source = SyntheticSource(
        one_item_pages(10), extent=PageExtent(last_page=10), failing={2, 3, 4, 5}
    )

    result = await CrawlWindow(source, config=CrawlConfig(window_size=4), observer=recorder).run()

    assert "DataLoss" in recorder.kinds()
    # Crawl continues past the lost batch
    assert result.items == ["item-1"] + [f"item-{i}" for i in range(6, 11)]


@pytest.mark.asyncio
async def test_parse_failure_on_auxiliary_page_is_recovered(recorder):
    source = SyntheticSource(one_item_pages(4), extent=PageExtent(last_page=4), broken={2})

    result = await CrawlWindow(source, config=CrawlConfig(window_size=4), observer=recorder).run()

    assert result.items == ["item-1", "item-3", "item-4"]
    assert recorder.kinds() == ["ParseFailure"]


# ---------------------------------------------------------------------------
# Unknown extent
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_extent_stops_on_empty_batch(recorder):
    source = SyntheticSource(one_item_pages(6))

    result = await CrawlWindow(source, config=CrawlConfig(window_size=4), observer=recorder).run()

    assert result.page_count is None
    assert result.batches == [[2, 3, 4, 5], [6, 7, 8, 9], [10, 11, 12, 13]]
    assert result.items == [f"item-{i}" for i in range(1, 7)]
    assert not recorder.partial


@pytest.mark.asyncio
async def test_unknown_extent_all_failed_batch_is_inconclusive(recorder):
    source = SyntheticSource(one_item_pages(20), failing={2, 3})

    result = await CrawlWindow(source, config=CrawlConfig(window_size=2), observer=recorder).run()

    assert result.batches == [[2, 3]]
    assert result.items == ["item-1"]
    assert "Inconclusive" in recorder.kinds()


@pytest.mark.asyncio
async def test_expected_item_count_stops_the_crawl(recorder):
    pages = {i: [f"{i}a", f"{i}b"] for i in range(1, 50)}
    # page_size=0 leaves the page count unknown, total_count still bounds items
    source = SyntheticSource(pages, extent=PageExtent(total_count=5))

    result = await CrawlWindow(
        source, config=CrawlConfig(window_size=1, page_size=0), observer=recorder
    ).run()

    assert result.batches == [[2], [3]]
    assert len(result.items) == 6


@pytest.mark.asyncio
async def test_batch_safety_bound(recorder):
    pages = {i: [i] for i in range(1, 1000)}
    source = SyntheticSource(pages)

    result = await CrawlWindow(
        source, config=CrawlConfig(window_size=2, max_batches=3), observer=recorder
    ).run()

    assert len(result.batches) == 3
    assert len(result.items) == 7
    assert "BatchLimit" in recorder.kinds()


# ---------------------------------------------------------------------------
# Mandatory page, cancellation, timeout
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_page_failure_is_fatal(recorder):
    source = SyntheticSource(one_item_pages(5), failing={1})

    with pytest.raises(MandatoryFetchFailure) as excinfo:
        await CrawlWindow(source, observer=recorder).run()

    assert excinfo.value.page_index == 1
    assert isinstance(excinfo.value.__cause__, TransportFailure)
    assert source.fetched == [1]


@pytest.mark.asyncio
async def test_custom_first_page(recorder):
    source = SyntheticSource(one_item_pages(6), extent=PageExtent(last_page=6))

    result = await CrawlWindow(
        source, config=CrawlConfig(window_size=4, first_page=3), observer=recorder
    ).run()

    assert result.batches == [[4, 5, 6]]
    assert result.items == ["item-3", "item-4", "item-5", "item-6"]


@pytest.mark.asyncio
async def test_cancel_handle_stops_between_batches(recorder):
    cancel = asyncio.Event()
    cancel.set()
    source = SyntheticSource(one_item_pages(10), extent=PageExtent(last_page=10))

    result = await crawl_window(source, config=CrawlConfig(), observer=recorder, cancel=cancel)

    assert result.items == ["item-1"]
    assert result.batches == []


@pytest.mark.asyncio
async def test_crawl_timeout(recorder):
    source = SyntheticSource(one_item_pages(10), extent=PageExtent(last_page=10))
    original = source.fetch_page

    async def slow_fetch(index):
        if index > 1:
            await asyncio.sleep(0.2)
        return await original(index)

    source.fetch_page = slow_fetch

    with pytest.raises(asyncio.TimeoutError):
        await crawl_window(source, config=CrawlConfig(crawl_timeout=0.05), observer=recorder)


def test_window_size_must_be_positive():
    with pytest.raises(ValueError):
        CrawlWindow(SyntheticSource({}), config=CrawlConfig(window_size=0))


class DoubleSettleSource(SyntheticSource):
    """Settles the same waitable twice while parsing page 2."""

    def extract_items(self, document, index):
        if index == 2:
            marker = create_waitable()
            marker.resolve(index)
            marker.resolve(index)
        return super().extract_items(document, index)


class BrokenExtentSource(SyntheticSource):
    def extract_extent(self, document):
        create_waitable().result()


@pytest.mark.asyncio
async def test_invalid_state_while_parsing_a_page_propagates(recorder):
    source = DoubleSettleSource(one_item_pages(4), extent=PageExtent(last_page=4))

    with pytest.raises(InvalidState):
        await CrawlWindow(source, observer=recorder).run()
    assert recorder.diagnostics == []


@pytest.mark.asyncio
async def test_invalid_state_while_reading_extent_propagates(recorder):
    source = BrokenExtentSource(one_item_pages(2))

    with pytest.raises(InvalidState):
        await CrawlWindow(source, observer=recorder).run()


@pytest.mark.asyncio
async def test_shared_observer_tells_sources_apart(recorder):
    first = SyntheticSource(one_item_pages(3), extent=PageExtent(last_page=3), failing={2})
    second = SyntheticSource(one_item_pages(3), extent=PageExtent(last_page=3), failing={2})
    first.name, second.name = "series-a", "series-b"

    await asyncio.gather(
        CrawlWindow(first, observer=recorder).run(),
        CrawlWindow(second, observer=recorder).run(),
    )

    ids = sorted(d.operation_id for d in recorder.by_phase("page"))
    assert ids == ["series-a:2", "series-b:2"]


def test_default_observer_is_named_after_source():
    crawler = CrawlWindow(SyntheticSource({}))
    assert crawler.observer.name == "CrawlWindow:synthetic"

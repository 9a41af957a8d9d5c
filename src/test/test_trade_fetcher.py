import os
import sys
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))
import asyncio
import threading
import unittest
from TradeFetching.fetch_errors import ValidationError, PartialBatchFailure, RemoteError, FetchCancelled
from TradeFetching.trade_fetcher import TradeFetcher, validate_time_range, page_batches
from fake_trade_client import FakeTradeClient, make_pages

DAY_MS = 24 * 60 * 60 * 1000


def make_filters(days=1):
    return {
        "currency": "ETH",
        "instrument_type": "perp",
        "instrument_name": "ETH-PERP",
        "from_timestamp": 1_700_000_000_000,
        "to_timestamp": 1_700_000_000_000 + int(days * DAY_MS),
        "page_size": 500,
        "page": 4,
        "tx_status": "settled",
    }


class TestTimeRangeValidation(unittest.TestCase):

    def test_accepts_seven_days(self):
        validate_time_range(make_filters(days=7))


    def test_rejects_more_than_seven_days(self):
        with self.assertRaises(ValidationError):
            validate_time_range(make_filters(days=8))


    def test_rejects_inverted_range(self):
        filters = make_filters()
        filters["from_timestamp"], filters["to_timestamp"] = filters["to_timestamp"], filters["from_timestamp"]
        with self.assertRaises(ValidationError):
            validate_time_range(filters)


    def test_rejects_empty_range(self):
        filters = make_filters()
        filters["to_timestamp"] = filters["from_timestamp"]
        with self.assertRaises(ValidationError):
            validate_time_range(filters)


    def test_custom_window(self):
        with self.assertRaises(ValidationError):
            validate_time_range(make_filters(days=2), max_window_ms=DAY_MS)


    def test_page_batches(self):
        self.assertEqual(page_batches(5, 3), [[2, 3, 4], [5]])
        self.assertEqual(page_batches(1, 3), [])
        self.assertEqual(page_batches(7, 3), [[2, 3, 4], [5, 6, 7]])


class TestTradeFetcher(unittest.IsolatedAsyncioTestCase):

    async def test_single_page_makes_one_call(self):
        client = FakeTradeClient(make_pages(1))
        progress = []
        result = await TradeFetcher(client).fetch_all(make_filters(), progress.append)

        self.assertEqual(client.calls, [1])
        self.assertEqual(len(result["trades"]), 4)
        self.assertEqual(result["pagination"]["num_pages"], 1)
        self.assertEqual(progress, [{"current_page": 1, "total_pages": 1, "percentage": 100.0}])


    async def test_always_starts_at_page_one(self):
        """The caller's page number is ignored"""
        client = FakeTradeClient(make_pages(1))
        await TradeFetcher(client).fetch_all(make_filters())
        self.assertEqual(client.calls[0], 1)


    async def test_pages_fetched_in_batches(self):
        client = FakeTradeClient(make_pages(5))
        result = await TradeFetcher(client).fetch_all(make_filters())

        self.assertEqual(client.calls[0], 1)
        self.assertEqual(set(client.calls[1:4]), {2, 3, 4})
        self.assertEqual(client.calls[4:], [5])
        self.assertEqual(len(result["trades"]), 5 * 4)


    async def test_batch_requests_run_concurrently(self):
        """All three pages of a batch must be in flight at once to pass the barrier"""
        client = FakeTradeClient(make_pages(4), barrier=threading.Barrier(3))
        result = await TradeFetcher(client).fetch_all(make_filters())
        self.assertEqual(len(result["trades"]), 16)


    async def test_trades_concatenated_in_page_order(self):
        client = FakeTradeClient(make_pages(5, trades_per_page=1))
        result = await TradeFetcher(client).fetch_all(make_filters())
        trade_ids = [trade["trade_id"] for trade in result["trades"][::2]]
        self.assertEqual(trade_ids, [f"p{page}-t0" for page in range(1, 6)])


    async def test_progress_reaches_total(self):
        client = FakeTradeClient(make_pages(5))
        progress = []
        await TradeFetcher(client).fetch_all(make_filters(), progress.append)

        self.assertEqual(len(progress), 5)
        self.assertEqual(progress[0]["percentage"], 20.0)
        self.assertEqual(progress[-1], {"current_page": 5, "total_pages": 5, "percentage": 100.0})
        self.assertTrue(all(p["total_pages"] == 5 for p in progress))


    async def test_validation_happens_before_network(self):
        client = FakeTradeClient(make_pages(1))
        with self.assertRaises(ValidationError):
            await TradeFetcher(client).fetch_all(make_filters(days=8))
        self.assertEqual(client.calls, [])


    async def test_first_page_error_propagates(self):
        client = FakeTradeClient(make_pages(3), failing_pages={1: "Lyra API error: Bad Gateway"})
        with self.assertRaises(RemoteError) as ctx:
            await TradeFetcher(client).fetch_all(make_filters())
        self.assertEqual(str(ctx.exception), "Lyra API error: Bad Gateway")


    async def test_failing_page_aborts_whole_fetch(self):
        client = FakeTradeClient(make_pages(5), failing_pages={3: "page 3 exploded"})
        with self.assertRaises(PartialBatchFailure) as ctx:
            await TradeFetcher(client).fetch_all(make_filters())

        self.assertEqual(ctx.exception.page, 3)
        self.assertEqual(str(ctx.exception), "page 3 exploded")
        self.assertIsInstance(ctx.exception.__cause__, RemoteError)
        # The second batch is never issued
        self.assertNotIn(5, client.calls)


    async def test_failed_batch_stops_reporting_progress(self):
        """A slow page finishing after its batch failed reports nothing"""
        client = FakeTradeClient(make_pages(4), failing_pages={2: "page 2 exploded"},
                                 delays={3: 0.3, 4: 0.3})
        progress = []
        with self.assertRaises(PartialBatchFailure) as ctx:
            await TradeFetcher(client).fetch_all(make_filters(), progress.append)
        await asyncio.sleep(0.6)

        self.assertEqual(ctx.exception.page, 2)
        self.assertEqual([p["current_page"] for p in progress], [1])


    async def test_cancelled_between_batches(self):
        client = FakeTradeClient(make_pages(5))
        with self.assertRaises(FetchCancelled):
            await TradeFetcher(client).fetch_all(make_filters(), is_cancelled=lambda: True)
        self.assertEqual(client.calls, [1])


    async def test_missing_pagination_returns_first_page(self):
        client = FakeTradeClient({1: {"trades": [], "pagination": None}})
        result = await TradeFetcher(client).fetch_all(make_filters())
        self.assertEqual(result, {"trades": [], "pagination": None})


if __name__ == "__main__":
    unittest.main()

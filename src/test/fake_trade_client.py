import os
import sys
import threading
import time
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))
from TradeFetching.fetch_errors import RemoteError


def make_trade(trade_id, wallet, direction, amount="1.0", index_price="2000", trade_price="2001",
               subaccount_id=1, timestamp=1700000000000):
    """Create a test trade leg"""
    return {
        "trade_id": trade_id,
        "wallet": wallet,
        "subaccount_id": subaccount_id,
        "direction": direction,
        "trade_amount": amount,
        "trade_price": trade_price,
        "index_price": index_price,
        "timestamp": timestamp,
    }


def make_pages(num_pages, trades_per_page=2):
    """Pages of balanced trades: each page holds whole trades (both legs)"""
    pages = {}
    for page in range(1, num_pages + 1):
        trades = []
        for n in range(trades_per_page):
            trade_id = f"p{page}-t{n}"
            trades.append(make_trade(trade_id, f"0xseller{n:036d}", "sell"))
            trades.append(make_trade(trade_id, f"0xbuyer{page:037d}", "buy"))
        pages[page] = {"trades": trades, "pagination": {"num_pages": num_pages, "count": num_pages * len(trades)}}
    return pages


class FakeTradeClient:
    """Mock page client for testing"""
    def __init__(self, pages=None, failing_pages=None, barrier=None, delays=None):
        self.pages = pages or {}
        self.failing_pages = failing_pages or {}
        self.barrier = barrier
        self.delays = delays or {}
        self.calls = []
        self._lock = threading.Lock()


    def fetch_page(self, filters, page):
        with self._lock:
            self.calls.append(page)

        if self.barrier is not None and page > 1:
            self.barrier.wait(timeout=5)

        if page in self.delays:
            time.sleep(self.delays[page])

        if page in self.failing_pages:
            raise RemoteError(self.failing_pages[page], 500)
        return self.pages.get(page, {"trades": [], "pagination": {"num_pages": 0, "count": 0}})

import asyncio
import logging
from typing import Callable, Optional
from app_config import MAX_TIME_WINDOW_MS, FETCH_BATCH_SIZE
from TradeFetching.fetch_errors import ValidationError, PartialBatchFailure, FetchCancelled
from TradeFetching.trade_history_client import TradeHistoryClient
from Helper.helperfunctions import ms_to_datetime


def validate_time_range(filters: dict, max_window_ms: int = MAX_TIME_WINDOW_MS):
    """Rejects empty, inverted or too-wide time windows before anything hits the network"""
    from_ts = filters.get("from_timestamp")
    to_ts = filters.get("to_timestamp")

    if from_ts is None or to_ts is None:
        raise ValidationError("Both from_timestamp and to_timestamp are required")
    if from_ts >= to_ts:
        raise ValidationError("from_timestamp must be before to_timestamp")
    if to_ts - from_ts > max_window_ms:
        days = max_window_ms / (24 * 60 * 60 * 1000)
        raise ValidationError(f"Time range cannot exceed {days:g} days")


def page_batches(total_pages: int, batch_size: int = FETCH_BATCH_SIZE) -> list:
    """Pages 2..total_pages grouped into consecutive batches"""
    pages = list(range(2, total_pages + 1))
    return [pages[i:i + batch_size] for i in range(0, len(pages), batch_size)]


class TradeFetcher:
    """
    Loads every page of a trade-history query.

    Page 1 is always requested first to learn `num_pages`; the remaining
    pages are requested in concurrent batches, one batch at a time. Any
    failing page aborts the whole fetch.
    """

    def __init__(self, client: TradeHistoryClient = None, batch_size: int = FETCH_BATCH_SIZE,
                 max_window_ms: int = MAX_TIME_WINDOW_MS):
        self.client = client or TradeHistoryClient()
        self.batch_size = batch_size
        self.max_window_ms = max_window_ms
        self.logger = logging.getLogger("trade_fetcher")


    async def fetch_all(self, filters: dict, on_progress: Optional[Callable[[dict], None]] = None,
                        is_cancelled: Optional[Callable[[], bool]] = None) -> dict:
        """Returns `{trades, pagination}` with the trades of all pages concatenated in page order"""
        validate_time_range(filters, self.max_window_ms)

        self.logger.info(f"📦 Fetching {filters.get('currency')} {filters.get('instrument_type')} trades "
                         f"from {ms_to_datetime(filters['from_timestamp'])} to {ms_to_datetime(filters['to_timestamp'])}")

        first_page = await asyncio.to_thread(self.client.fetch_page, filters, 1)
        pagination = first_page.get("pagination")
        trades = list(first_page.get("trades") or [])

        if not pagination:
            self.logger.info(f"✅ Single response without pagination ({len(trades)} trades)")
            return {"trades": trades, "pagination": pagination}

        total_pages = pagination.get("num_pages", 0)
        completed = 1
        self._report(on_progress, completed, total_pages)

        if total_pages <= 1:
            self.logger.info(f"✅ Fetched 1 page ({len(trades)} trades)")
            return {"trades": trades, "pagination": pagination}

        for batch in page_batches(total_pages, self.batch_size):
            if is_cancelled and is_cancelled():
                self.logger.info("Fetch superseded, not issuing further batches")
                raise FetchCancelled("Fetch was superseded by a newer request")

            async def fetch_tracked(page):
                nonlocal completed
                try:
                    data = await asyncio.to_thread(self.client.fetch_page, filters, page)
                except Exception as e:
                    raise PartialBatchFailure(page, e) from e
                completed += 1
                self._report(on_progress, completed, total_pages)
                return data.get("trades") or []

            tasks = [asyncio.create_task(fetch_tracked(page)) for page in batch]
            try:
                results = await asyncio.gather(*tasks)
            except (Exception, asyncio.CancelledError):
                # A failed page aborts the batch; the others must not report progress afterwards
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            for page_trades in results:
                trades.extend(page_trades)

        self.logger.info(f"✅ Fetched {total_pages} pages ({len(trades)} trades)")
        return {"trades": trades, "pagination": pagination}


    def _report(self, on_progress, completed: int, total_pages: int):
        if not on_progress:
            return
        percentage = 100.0 if total_pages <= 1 else completed / total_pages * 100
        on_progress({
            "current_page": completed,
            "total_pages": total_pages,
            "percentage": percentage,
        })

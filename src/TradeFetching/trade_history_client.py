import logging
import requests
from app_config import TRADE_PROXY_URL, REQUEST_TIMEOUT
from TradeFetching.fetch_errors import RemoteError


def to_request_filters(filters: dict, page: int) -> dict:
    """Maps the controller's filter state onto the proxy's camelCase body"""
    return {
        "currency": filters.get("currency"),
        "instrumentType": filters.get("instrument_type"),
        "instrumentName": filters.get("instrument_name"),
        "fromTimestamp": filters.get("from_timestamp"),
        "toTimestamp": filters.get("to_timestamp"),
        "page": page,
        "pageSize": filters.get("page_size"),
        "txStatus": filters.get("tx_status"),
    }


def error_from_response(response) -> RemoteError:
    """Builds a RemoteError from the JSON `message` field, falling back to the status line"""
    message = None
    try:
        data = response.json()
        if isinstance(data, dict):
            message = data.get("message")
    except ValueError:
        pass

    if not message:
        message = f"API error ({response.status_code}): {response.reason}"
    return RemoteError(message, response.status_code)


class TradeHistoryClient:
    """Fetches single pages of trade history from the trade-history proxy"""

    def __init__(self, base_url: str = TRADE_PROXY_URL, timeout: float = REQUEST_TIMEOUT, session: requests.Session = None):
        self.url = f"{base_url.rstrip('/')}/api/trade-history"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger("trade_history_client")


    def fetch_page(self, filters: dict, page: int) -> dict:
        """Returns the raw `{trades, pagination}` payload for one page"""
        payload = {"filters": to_request_filters(filters, page)}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"Request for page {page} failed: {e}")
            raise RemoteError(str(e)) from e

        if not response.ok:
            error = error_from_response(response)
            self.logger.error(f"Page {page} returned {response.status_code}: {error.message}")
            raise error

        return response.json()


    def close(self):
        self.session.close()

"""CoinGecko simple-price feed

Fetches spot USD prices from the public CoinGecko API:

    GET {base_url}/simple/price?ids=flow&vs_currencies=usd
    -> {"flow": {"usd": 0.2784}}

Reference: https://docs.coingecko.com/reference/simple-price
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional

import requests

from flow_oracle.adapters.base import PriceSource
from flow_oracle.errors import PriceFetchError

logger = logging.getLogger(__name__)

COINGECKO_API_URL = "https://api.coingecko.com/api/v3"

# symbol -> CoinGecko coin id
DEFAULT_COIN_IDS = {
    'FLOW': 'flow',
}


class _RetryableFetchError(PriceFetchError):
    """Transport or server-side failure worth another attempt"""


class CoinGeckoPriceFeed(PriceSource):
    """Fetch spot prices from CoinGecko's simple/price endpoint."""

    def __init__(
        self,
        base_url: str = COINGECKO_API_URL,
        coin_ids: Optional[Dict[str, str]] = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the CoinGecko price feed.

        Args:
            base_url: API root, without trailing slash
            coin_ids: Symbol to CoinGecko id overrides, merged over the defaults
            timeout: Per-request timeout in seconds
            max_retries: Total attempts for transport and 5xx failures
            retry_delay: Fixed delay between attempts in seconds
            session: Optional requests session (tests inject a fake)
            sleep: Sleep function used between attempts
        """
        self.base_url = base_url.rstrip('/')
        self.coin_ids = dict(DEFAULT_COIN_IDS)
        if coin_ids:
            self.coin_ids.update({k.upper(): v for k, v in coin_ids.items()})
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self._sleep = sleep

    def get_coin_id(self, symbol: str) -> str:
        """Map a token symbol to its CoinGecko id"""
        coin_id = self.coin_ids.get(symbol.upper())
        if not coin_id:
            raise PriceFetchError(f"No CoinGecko id configured for {symbol}")
        return coin_id

    def get_price_usd(self, symbol: str) -> Decimal:
        """
        Get the current USD price for a token.

        Args:
            symbol: Token symbol, e.g. FLOW

        Returns:
            Price in USD as a positive Decimal

        Raises:
            PriceFetchError: on network failure, non-2xx status or malformed body
        """
        coin_id = self.get_coin_id(symbol)

        last_error: Optional[PriceFetchError] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                payload = self._request(coin_id)
                price = self._parse_price(payload, coin_id)
                logger.debug(f"CoinGecko {symbol} ({coin_id}): ${price} USD")
                return price
            except _RetryableFetchError as e:
                last_error = e
                logger.warning(f"CoinGecko request failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt < self.max_retries:
                    self._sleep(self.retry_delay)

        raise PriceFetchError(f"Giving up after {self.max_retries} attempts: {last_error}")

    def _request(self, coin_id: str):
        url = f"{self.base_url}/simple/price"
        params = {'ids': coin_id, 'vs_currencies': 'usd'}
        headers = {'Accept': 'application/json', 'User-Agent': 'flow-price-oracle/0.1'}

        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise _RetryableFetchError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise _RetryableFetchError(f"CoinGecko returned status {response.status_code}")
        if not 200 <= response.status_code < 300:
            raise PriceFetchError(f"CoinGecko returned status {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise PriceFetchError(f"Malformed JSON from CoinGecko: {e}") from e

    @staticmethod
    def _parse_price(payload, coin_id: str) -> Decimal:
        if not isinstance(payload, dict):
            raise PriceFetchError(f"Unexpected response body: {payload!r}")

        entry = payload.get(coin_id)
        if not isinstance(entry, dict) or 'usd' not in entry:
            raise PriceFetchError(f"No USD price for {coin_id} in response")

        raw = entry['usd']
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            raise PriceFetchError(f"Price for {coin_id} is not a number: {raw!r}")

        try:
            price = Decimal(str(raw))
        except InvalidOperation as e:
            raise PriceFetchError(f"Price for {coin_id} is not a number: {raw!r}") from e

        if not price.is_finite() or price <= 0:
            raise PriceFetchError(f"Price for {coin_id} is not positive: {price}")
        return price

"""Base abstract classes for price source and ledger adapters"""
from abc import ABC, abstractmethod
from decimal import Decimal
from threading import Event
from typing import Optional


class PriceSource(ABC):
    """Base class for external price feeds"""

    @abstractmethod
    def get_price_usd(self, symbol: str) -> Decimal:
        """
        Get the current USD price for a token.

        Args:
            symbol: Token symbol (e.g. 'FLOW')

        Returns:
            Price in USD as a positive Decimal

        Raises:
            PriceFetchError: if no usable price could be obtained
        """
        pass


class LedgerSubmitter(ABC):
    """Base class for adapters that commit a price to a ledger"""

    @abstractmethod
    def submit(self, price: Decimal, cancel: Optional[Event] = None) -> str:
        """
        Submit one price-update transaction and block until it is sealed.

        Exactly one transaction is sent per call; retries are the caller's
        concern.

        Args:
            price: Positive price in USD
            cancel: Optional event; once set, the finality wait stops

        Returns:
            The ledger transaction identifier

        Raises:
            SubmitError: on transport failure, reverted execution or cancellation
        """
        pass

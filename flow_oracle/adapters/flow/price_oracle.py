"""PriceOracle contract submitter

Encodes a USD price as UFix64, sends an admin-only `updateFlowPrice`
transaction from the signing account and polls the network until the
transaction is sealed.
"""

import logging
import time
from decimal import Decimal
from enum import Enum
from threading import Event
from typing import Any, Callable, Optional, Tuple

import requests
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from flow_oracle.adapters.base import LedgerSubmitter
from flow_oracle.adapters.flow import ufix64
from flow_oracle.adapters.flow.chain_adapter import FlowChainAdapter
from flow_oracle.errors import InvalidInput, SubmitError, SubmitErrorKind

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 100_000
DEFAULT_POLL_INTERVAL = 1.0
# A receipt appears once the EVM block executes, before the Flow block
# containing it is sealed. Blocks on top stand in for that seal.
DEFAULT_CONFIRMATIONS = 10

# PriceOracle ABI - minimal interface for the updater
PRICE_ORACLE_ABI = [
    {
        "inputs": [{"internalType": "uint64", "name": "newPrice", "type": "uint64"}],
        "name": "updateFlowPrice",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "flowPrice",
        "outputs": [{"internalType": "uint64", "name": "", "type": "uint64"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "internalType": "uint64", "name": "newPrice", "type": "uint64"},
            {"indexed": False, "internalType": "uint256", "name": "timestamp", "type": "uint256"}
        ],
        "name": "PriceUpdated",
        "type": "event"
    }
]

# Errors that mean the node could not be reached or refused the request
TRANSPORT_ERRORS = (Web3Exception, requests.exceptions.RequestException, OSError)


class TransactionStatus(Enum):
    PENDING = 'pending'      # not yet in a block
    EXECUTED = 'executed'    # in a block, not enough confirmations yet
    SEALED = 'sealed'        # final


class FinalityPoller:
    """Polls a transaction until it reaches SEALED.

    The wait is unbounded unless `timeout` is set or the cancel event fires;
    both end the wait with SubmitError(CANCELLED).
    """

    def __init__(self, web3: Web3, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 required_confirmations: int = DEFAULT_CONFIRMATIONS, timeout: Optional[float] = None,
                 sleep: Optional[Callable[[float], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.web3 = web3
        self.poll_interval = poll_interval
        self.required_confirmations = max(1, required_confirmations)
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def get_status(self, tx_hash: str) -> Tuple[TransactionStatus, Optional[Any]]:
        """Return the current status and the receipt, if any"""
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return TransactionStatus.PENDING, None

        confirmations = self.web3.eth.block_number - receipt['blockNumber'] + 1
        if confirmations < self.required_confirmations:
            return TransactionStatus.EXECUTED, receipt
        return TransactionStatus.SEALED, receipt

    def wait(self, tx_hash: str, cancel: Optional[Event] = None) -> Any:
        """Block until the transaction is sealed and return its receipt"""
        started = self._clock()
        polls = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise SubmitError(SubmitErrorKind.CANCELLED,
                                  f"finality wait cancelled after {polls} polls", tx_hash=tx_hash)
            if self.timeout is not None and self._clock() - started >= self.timeout:
                raise SubmitError(SubmitErrorKind.CANCELLED,
                                  f"finality wait timed out after {self.timeout}s", tx_hash=tx_hash)

            try:
                status, receipt = self.get_status(tx_hash)
            except TRANSPORT_ERRORS as e:
                raise SubmitError(SubmitErrorKind.TRANSPORT,
                                  f"failed to poll transaction result: {e}", tx_hash=tx_hash) from e
            except (KeyError, TypeError) as e:
                raise SubmitError(SubmitErrorKind.TRANSPORT,
                                  f"malformed receipt: missing {e}", tx_hash=tx_hash) from e
            polls += 1

            if status is TransactionStatus.SEALED:
                logger.debug(f"Transaction {tx_hash} sealed after {polls} polls")
                return receipt
            if polls % 30 == 0:
                logger.info(f"Still waiting for {tx_hash} to seal ({status.value}, {polls} polls)")

            self._pause(cancel)

    def _pause(self, cancel: Optional[Event]):
        if self._sleep is not None:
            self._sleep(self.poll_interval)
        elif cancel is not None:
            # Wakes early on shutdown
            cancel.wait(self.poll_interval)
        else:
            time.sleep(self.poll_interval)


class PriceOracleSubmitter(LedgerSubmitter):
    """Commits prices to the PriceOracle contract through the signing account"""

    def __init__(self, chain: FlowChainAdapter, gas_limit: int = DEFAULT_GAS_LIMIT,
                 poller: Optional[FinalityPoller] = None):
        self.chain = chain
        self.gas_limit = gas_limit
        self.poller = poller or FinalityPoller(chain.get_web3_instance())
        self._contract = None

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.chain.get_web3_instance().eth.contract(
                address=self.chain.contract_address,
                abi=PRICE_ORACLE_ABI
            )
        return self._contract

    def build_transaction(self, raw_price: int) -> dict:
        """Build the unsigned updateFlowPrice transaction for the signing account"""
        w3 = self.chain.get_web3_instance()
        address = self.chain.account_address
        # Explicit gas: estimation would surface reverts before sealing
        return self.contract.functions.updateFlowPrice(raw_price).build_transaction({
            'from': address,
            'nonce': w3.eth.get_transaction_count(address, 'pending'),
            'gas': self.gas_limit,
            'gasPrice': w3.eth.gas_price,
            'chainId': self.chain.get_chain_id(),
        })

    def submit(self, price: Decimal, cancel: Optional[Event] = None) -> str:
        if price <= 0:
            raise InvalidInput(f"Price must be positive, got {price}")
        raw_price = ufix64.encode(price)

        w3 = self.chain.get_web3_instance()
        try:
            tx = self.build_transaction(raw_price)
            signed = w3.eth.account.sign_transaction(tx, private_key=self.chain.private_key)
            tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
        except TRANSPORT_ERRORS as e:
            raise SubmitError(SubmitErrorKind.TRANSPORT, f"failed to send transaction: {e}") from e
        except Exception as e:
            # Bad signing key, malformed transaction fields or an unexpected node reply
            logger.error(f"Unexpected error building price update transaction: {e}", exc_info=True)
            raise SubmitError(SubmitErrorKind.TRANSPORT,
                              f"failed to build transaction: {type(e).__name__}: {e}") from e

        logger.info(f"Submitted price update {ufix64.format_ufix64(raw_price)} (TX: {tx_hash}), "
                    f"waiting for seal")

        receipt = self.poller.wait(tx_hash, cancel)

        try:
            status = receipt['status']
            block = receipt['blockNumber']
        except (KeyError, TypeError) as e:
            raise SubmitError(SubmitErrorKind.TRANSPORT,
                              f"malformed receipt: missing {e}", tx_hash=tx_hash) from e

        if status != 1:
            raise SubmitError(
                SubmitErrorKind.EXECUTION_REVERTED,
                f"transaction reverted in block {block} "
                f"(does {self.chain.account_address} hold the oracle admin role?)",
                tx_hash=tx_hash,
            )

        logger.info(f"Price updated to ${price:.4f} (TX: {tx_hash})")
        return tx_hash

    def read_price(self) -> Decimal:
        """Read the price currently stored in the contract"""
        return ufix64.decode(self.contract.functions.flowPrice().call())

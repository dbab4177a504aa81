"""Flow EVM chain adapter implementation"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import Web3Exception

from flow_oracle.errors import ConfigError, StartupError

logger = logging.getLogger(__name__)

FLOW_EVM_TESTNET_RPC = "https://testnet.evm.nodes.onflow.org"


@dataclass(frozen=True)
class AccountInfo:
    """Signing account state read at startup"""
    address: str
    nonce: int
    balance_wei: int


class FlowChainAdapter:
    """Adapter for the Flow EVM network"""

    def __init__(self, rpc_url: str, private_key: str, account_address: str,
                 contract_address: Optional[str] = None, web3: Optional[Web3] = None):
        if not private_key:
            raise ConfigError("Signing key is required for chain updates")
        if not account_address:
            raise ConfigError("Signing account address is required for chain updates")

        self.rpc_url = rpc_url
        self.private_key = private_key
        try:
            self.account_address = Web3.to_checksum_address(account_address)
            # Defaults to the signing account; load_account refuses it unless code lives there
            self.contract_address = Web3.to_checksum_address(contract_address or account_address)
        except ValueError as e:
            raise ConfigError(f"Invalid address: {e}") from e
        self.web3_instance = web3
        self._chain_id: Optional[int] = None

    def get_web3_instance(self) -> Web3:
        """Get web3.py instance for Flow EVM"""
        if self.web3_instance is None:
            if not self.rpc_url:
                raise ConfigError("RPC URL not configured for Flow EVM")
            self.web3_instance = Web3(Web3.HTTPProvider(self.rpc_url))
        return self.web3_instance

    def get_chain_id(self) -> int:
        """Chain id, cached after the first lookup"""
        if self._chain_id is None:
            self._chain_id = self.get_web3_instance().eth.chain_id
        return self._chain_id

    def ping(self) -> bool:
        """Check the RPC endpoint answers. Failure here is not fatal."""
        try:
            connected = self.get_web3_instance().is_connected()
        except (Web3Exception, requests.exceptions.RequestException, OSError) as e:
            logger.warning(f"Failed to ping Flow EVM network: {e}")
            return False
        if not connected:
            logger.warning(f"Flow EVM RPC at {self.rpc_url} is not reachable")
        return connected

    def load_account(self) -> AccountInfo:
        """
        Verify the signing key belongs to the configured account and read its state.

        Raises:
            ConfigError: if the key is malformed or belongs to another address,
                or the target contract address holds no code
            StartupError: if the account cannot be looked up
        """
        try:
            derived = Account.from_key(self.private_key).address
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Failed to decode private key: {e}") from e

        if derived != self.account_address:
            raise ConfigError(
                f"Private key belongs to {derived}, not configured account {self.account_address}"
            )

        w3 = self.get_web3_instance()
        try:
            nonce = w3.eth.get_transaction_count(self.account_address)
            balance = w3.eth.get_balance(self.account_address)
            code = w3.eth.get_code(self.contract_address)
        except (Web3Exception, requests.exceptions.RequestException, OSError) as e:
            raise StartupError(f"Failed to get account {self.account_address}: {e}") from e

        # A call to an address without code succeeds and changes nothing
        if not bytes(code):
            raise ConfigError(
                f"No contract deployed at {self.contract_address}; "
                f"set PRICE_ORACLE_CONTRACT to the PriceOracle address"
            )

        info = AccountInfo(address=self.account_address, nonce=nonce, balance_wei=balance)
        logger.info(f"Flow EVM account loaded: {info.address} (nonce: {info.nonce}, "
                    f"balance: {Web3.from_wei(info.balance_wei, 'ether')} FLOW)")
        if info.balance_wei == 0:
            logger.warning("Signing account has no balance; price updates will fail to pay for gas")
        return info

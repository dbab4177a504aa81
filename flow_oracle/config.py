"""Configuration loading

Non-secret settings live in config/oracle.yaml. Credentials and deployment
specific values come from the environment and override the file.
"""
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from flow_oracle.analytics.yield_engine import (
    DEFAULT_PROTOCOLS,
    MAX_APY,
    MIN_APY,
    ProtocolRate,
    protocols_from_config,
)
from flow_oracle.errors import ConfigError, InvalidInput

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "oracle.yaml"
DEFAULT_RPC_URL = "https://testnet.evm.nodes.onflow.org"
DEFAULT_PRICE_API = "https://api.coingecko.com/api/v3"


@dataclass
class PriceFeedConfig:
    base_url: str = DEFAULT_PRICE_API
    coin_ids: Dict[str, str] = field(default_factory=lambda: {'FLOW': 'flow'})
    timeout_seconds: float = 15.0
    max_retries: int = 3
    retry_delay_seconds: float = 2.0


@dataclass
class LedgerConfig:
    rpc_url: str = DEFAULT_RPC_URL
    private_key: Optional[str] = None
    account_address: Optional[str] = None
    contract_address: Optional[str] = None
    gas_limit: int = 100_000
    poll_interval_seconds: float = 1.0
    required_confirmations: int = 10  # blocks on top before a receipt counts as sealed
    submit_timeout_seconds: Optional[float] = None  # None waits for the seal indefinitely

    @property
    def target_contract(self) -> Optional[str]:
        return self.contract_address or self.account_address


@dataclass
class DatabaseConfig:
    url: Optional[str] = None
    min_connections: int = 2
    max_connections: int = 10


@dataclass
class AnalyticsConfig:
    protocols: List[ProtocolRate] = field(default_factory=lambda: list(DEFAULT_PROTOCOLS))
    min_apy: Decimal = MIN_APY
    max_apy: Decimal = MAX_APY


@dataclass
class OracleConfig:
    symbol: str = 'FLOW'
    update_interval_seconds: int = 300
    chain_updates_enabled: bool = True
    log_level: str = 'INFO'
    price_feed: PriceFeedConfig = field(default_factory=PriceFeedConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)

    def validate(self):
        """Raise ConfigError if required values are missing or inconsistent"""
        if not self.database.url:
            raise ConfigError("DATABASE_URL environment variable is required")
        if self.chain_updates_enabled:
            if not self.ledger.private_key:
                raise ConfigError("FLOW_PRIVATE_KEY environment variable is required")
            if not self.ledger.account_address:
                raise ConfigError("FLOW_ACCOUNT_ADDRESS environment variable is required")
        if self.update_interval_seconds <= 0:
            raise ConfigError(f"Update interval must be positive, got {self.update_interval_seconds}")
        if self.ledger.poll_interval_seconds <= 0:
            raise ConfigError("Ledger poll interval must be positive")
        if not self.analytics.protocols:
            raise ConfigError("At least one protocol must be configured")
        if self.analytics.min_apy > self.analytics.max_apy:
            raise ConfigError(
                f"min_apy {self.analytics.min_apy} is greater than max_apy {self.analytics.max_apy}"
            )


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_number(value, name: str, kind=int):
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def load_yaml(config_path: Optional[Path] = None) -> dict:
    """Load the YAML settings file. A missing default file means all defaults."""
    explicit = config_path is not None
    path = Path(config_path) if explicit else DEFAULT_CONFIG_PATH

    if not path.exists():
        if explicit:
            raise ConfigError(f"Oracle config not found: {path}")
        logger.info(f"No config file at {path}, using defaults")
        return {}

    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def load_config(config_path: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None) -> OracleConfig:
    """
    Build the oracle configuration from the YAML file and the environment.

    Args:
        config_path: Explicit YAML path; defaults to config/oracle.yaml if present
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated OracleConfig

    Raises:
        ConfigError: if a required value is missing or a value is invalid
    """
    env = os.environ if environ is None else environ
    data = load_yaml(config_path)
    cfg = OracleConfig()

    cfg.symbol = str(data.get('symbol', cfg.symbol)).upper()
    cfg.update_interval_seconds = _parse_number(
        data.get('update_interval_seconds', cfg.update_interval_seconds), 'update_interval_seconds')
    cfg.chain_updates_enabled = _parse_bool(data.get('chain_updates_enabled', cfg.chain_updates_enabled))
    cfg.log_level = str(data.get('log_level', cfg.log_level)).upper()

    feed = data.get('price_feed') or {}
    cfg.price_feed.base_url = feed.get('base_url', cfg.price_feed.base_url)
    cfg.price_feed.coin_ids.update({str(k).upper(): v for k, v in (feed.get('coin_ids') or {}).items()})
    cfg.price_feed.timeout_seconds = _parse_number(
        feed.get('timeout_seconds', cfg.price_feed.timeout_seconds), 'timeout_seconds', float)
    cfg.price_feed.max_retries = _parse_number(
        feed.get('max_retries', cfg.price_feed.max_retries), 'max_retries')
    cfg.price_feed.retry_delay_seconds = _parse_number(
        feed.get('retry_delay_seconds', cfg.price_feed.retry_delay_seconds), 'retry_delay_seconds', float)

    ledger = data.get('ledger') or {}
    cfg.ledger.rpc_url = ledger.get('rpc_url', cfg.ledger.rpc_url)
    cfg.ledger.gas_limit = _parse_number(ledger.get('gas_limit', cfg.ledger.gas_limit), 'gas_limit')
    cfg.ledger.poll_interval_seconds = _parse_number(
        ledger.get('poll_interval_seconds', cfg.ledger.poll_interval_seconds), 'poll_interval_seconds', float)
    cfg.ledger.required_confirmations = _parse_number(
        ledger.get('required_confirmations', cfg.ledger.required_confirmations), 'required_confirmations')
    timeout = ledger.get('submit_timeout_seconds')
    cfg.ledger.submit_timeout_seconds = (
        None if timeout is None else _parse_number(timeout, 'submit_timeout_seconds', float)
    )

    database = data.get('database') or {}
    cfg.database.min_connections = _parse_number(
        database.get('min_connections', cfg.database.min_connections), 'min_connections')
    cfg.database.max_connections = _parse_number(
        database.get('max_connections', cfg.database.max_connections), 'max_connections')

    analytics = data.get('analytics') or {}
    try:
        if 'protocols' in analytics:
            cfg.analytics.protocols = protocols_from_config(analytics['protocols'] or [])
        if 'min_apy' in analytics:
            cfg.analytics.min_apy = Decimal(str(analytics['min_apy']))
        if 'max_apy' in analytics:
            cfg.analytics.max_apy = Decimal(str(analytics['max_apy']))
    except (InvalidInput, ArithmeticError) as e:
        raise ConfigError(f"Invalid analytics config: {e}") from e

    # Environment overrides
    cfg.ledger.private_key = env.get('FLOW_PRIVATE_KEY') or None
    cfg.ledger.account_address = env.get('FLOW_ACCOUNT_ADDRESS') or None
    cfg.ledger.contract_address = env.get('PRICE_ORACLE_CONTRACT') or None
    cfg.database.url = env.get('DATABASE_URL') or None
    if env.get('FLOW_EVM_RPC_URL'):
        cfg.ledger.rpc_url = env['FLOW_EVM_RPC_URL']
    if env.get('UPDATE_INTERVAL_SECONDS'):
        cfg.update_interval_seconds = _parse_number(env['UPDATE_INTERVAL_SECONDS'], 'UPDATE_INTERVAL_SECONDS')
    if env.get('SKIP_BLOCKCHAIN'):
        cfg.chain_updates_enabled = not _parse_bool(env['SKIP_BLOCKCHAIN'])
    if env.get('LOG_LEVEL'):
        cfg.log_level = env['LOG_LEVEL'].upper()

    cfg.validate()
    return cfg

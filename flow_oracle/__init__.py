"""FLOW price oracle updater.

Fetches the FLOW/USD price, commits it to the on-chain PriceOracle contract and
records the price plus derived protocol APY snapshots in PostgreSQL.
"""

__version__ = "0.1.0"

"""Scheduled job for updating the FLOW price oracle"""
import argparse
import logging
import os
import signal
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Event
from typing import Callable, List, Optional

import psycopg2
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler

from flow_oracle.adapters.coingecko_price import CoinGeckoPriceFeed
from flow_oracle.adapters.flow.chain_adapter import FlowChainAdapter
from flow_oracle.adapters.flow.price_oracle import FinalityPoller, PriceOracleSubmitter
from flow_oracle.collectors.update_cycle import CycleOrchestrator, CycleResult
from flow_oracle.config import OracleConfig, load_config
from flow_oracle.database.connection import DatabaseConnection
from flow_oracle.database.queries import RecordStore
from flow_oracle.errors import ConfigError, StartupError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CYCLE_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_STARTUP_ERROR = 3


def create_scheduler() -> BlockingScheduler:
    # One worker: cycles must never overlap
    return BlockingScheduler(timezone="UTC", executors={'default': ThreadPoolExecutor(1)})


class UpdaterJob:
    """Runs one cycle at startup and then one per interval, strictly serially.

    Every cycle is a one-shot job. When a cycle returns, the next one is added
    at max(cycle start + interval, now), so an overrunning cycle is followed
    immediately instead of being skipped or run concurrently.
    """

    def __init__(self, orchestrator: CycleOrchestrator, interval_seconds: float = 300,
                 scheduler=None, cancel_event: Optional[Event] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.orchestrator = orchestrator
        self.interval = timedelta(seconds=interval_seconds)
        self.scheduler = scheduler if scheduler is not None else create_scheduler()
        self.cancel_event = cancel_event or Event()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.results: List[CycleResult] = []
        self._stopping = False

    def schedule_next(self, run_date: datetime):
        """Add the one-shot job for the next cycle"""
        self.scheduler.add_job(
            self.run_cycle,
            trigger='date',
            run_date=run_date,
            name='FLOW Price Oracle Update',
            misfire_grace_time=None,
            max_instances=1,
        )

    def run_cycle(self) -> Optional[CycleResult]:
        """Run one update cycle, then queue the next"""
        started = self._clock()
        result = None
        try:
            result = self.orchestrator.run()
            self.results.append(result)
            logger.info(f"Cycle {result.cycle} finished: {result.outcome.value if result.outcome else 'unknown'}")
        except Exception as e:
            logger.error(f"Unexpected error in update cycle: {e}", exc_info=True)
        finally:
            if not self._stopping:
                self.schedule_next(max(started + self.interval, self._clock()))
        return result

    def start(self):
        """Queue the first cycle immediately and block running the scheduler"""
        self.schedule_next(self._clock())
        logger.info(f"Scheduler started. Update interval: {self.interval}")
        self.scheduler.start()

    def stop(self, *_args):
        """Cancel any in-flight finality wait and stop scheduling"""
        if self._stopping:
            return
        self._stopping = True
        logger.info("Shutting down oracle updater...")
        self.cancel_event.set()
        if getattr(self.scheduler, 'running', False):
            self.scheduler.shutdown(wait=True)


def build_orchestrator(cfg: OracleConfig, db: DatabaseConnection,
                       cancel_event: Event) -> CycleOrchestrator:
    """Wire the price feed, ledger submitter and record store from config"""
    feed = CoinGeckoPriceFeed(
        base_url=cfg.price_feed.base_url,
        coin_ids=cfg.price_feed.coin_ids,
        timeout=cfg.price_feed.timeout_seconds,
        max_retries=cfg.price_feed.max_retries,
        retry_delay=cfg.price_feed.retry_delay_seconds,
    )

    submitter = None
    if cfg.chain_updates_enabled:
        chain = FlowChainAdapter(
            rpc_url=cfg.ledger.rpc_url,
            private_key=cfg.ledger.private_key,
            account_address=cfg.ledger.account_address,
            contract_address=cfg.ledger.contract_address,
        )
        chain.ping()
        chain.load_account()
        poller = FinalityPoller(
            chain.get_web3_instance(),
            poll_interval=cfg.ledger.poll_interval_seconds,
            required_confirmations=cfg.ledger.required_confirmations,
            timeout=cfg.ledger.submit_timeout_seconds,
        )
        submitter = PriceOracleSubmitter(chain, gas_limit=cfg.ledger.gas_limit, poller=poller)

    return CycleOrchestrator(
        price_source=feed,
        record_store=RecordStore(db),
        submitter=submitter,
        symbol=cfg.symbol,
        protocols=cfg.analytics.protocols,
        min_apy=cfg.analytics.min_apy,
        max_apy=cfg.analytics.max_apy,
        chain_updates_enabled=cfg.chain_updates_enabled,
        cancel_event=cancel_event,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="FLOW price oracle updater")
    p.add_argument("--config", type=Path, default=None, help="Path to oracle.yaml")
    p.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    p.add_argument("--skip-blockchain", action="store_true", help="Do not submit prices on-chain")
    return p.parse_args(argv)


def setup_logging(level_name: str = 'INFO'):
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        force=True
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Process entry point. Returns the exit code."""
    args = parse_args(argv)
    setup_logging()

    environ = dict(os.environ)
    if args.skip_blockchain:
        environ['SKIP_BLOCKCHAIN'] = 'true'
    try:
        cfg = load_config(args.config, environ)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    setup_logging(cfg.log_level)

    logger.info("=" * 60)
    logger.info(f"Starting {cfg.symbol} price oracle updater")
    logger.info(f"Update interval: {cfg.update_interval_seconds}s")
    logger.info(f"Contract address: {cfg.ledger.target_contract}")
    logger.info(f"Network: {cfg.ledger.rpc_url}")
    if not cfg.chain_updates_enabled:
        logger.warning("Skipping blockchain updates (SKIP_BLOCKCHAIN=true)")
    logger.info("=" * 60)

    db = DatabaseConnection(cfg.database.url, cfg.database.min_connections, cfg.database.max_connections)
    cancel_event = Event()
    try:
        try:
            db.ping()
            logger.info("Database connection established")
            orchestrator = build_orchestrator(cfg, db, cancel_event)
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_CONFIG_ERROR
        except StartupError as e:
            logger.error(f"Startup check failed: {e}")
            return EXIT_STARTUP_ERROR
        except psycopg2.Error as e:
            logger.error(f"Database check failed: {e}")
            return EXIT_STARTUP_ERROR

        if args.once:
            result = orchestrator.run()
            return EXIT_OK if result.succeeded else EXIT_CYCLE_FAILED

        job = UpdaterJob(orchestrator, cfg.update_interval_seconds, cancel_event=cancel_event)
        signal.signal(signal.SIGTERM, job.stop)
        try:
            job.start()
        except KeyboardInterrupt:
            job.stop()
        return EXIT_OK
    finally:
        db.close_all()
        logger.info("Oracle updater shut down.")


if __name__ == '__main__':
    sys.exit(main())

"""
launch-trader Runner: Main Loop

Wires the store, upstream clients and trading components from config/app.yaml
and drives the cycle coordinator for one user, either once or on a jittered
fixed cadence.

Flow per tick:
1. Skip if the bot is not active for the user
2. Coordinator: MONITOR open positions, then SCAN for one new launch
3. Sleep until the next tick
"""

import json
import os
import random
import signal
import time
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml

from core.audit_log import AuditLogger
from core.birdeye_client import BirdeyeClient
from core.jupiter_client import JupiterClient
from core.opportunity_scanner import OpportunityScanner
from core.position_monitor import PositionMonitor
from core.position_store import PositionStore
from core.price_oracle import JupiterPriceOracle
from core.safety_gate import SafetyGate, StoredSafetyOracle
from core.solana_rpc import SolanaRpcClient
from core.swap_executor import SwapExecutor
from core.token_safety import TokenSafetyAnalyzer
from core.trading_cycle import CycleReport, TradingCycleCoordinator
from core.wallet import WalletSigner
from infra.instance_lock import CycleLease, SingleInstanceLock
from infra.metrics import MetricsRecorder
from infra.state_store import create_state_store_from_config
from tools.config_validator import AppConfig

logger = logging.getLogger(__name__)


class TradingLoop:
    """
    Main trading loop orchestrator.

    Responsibilities:
    - Load and validate config
    - Build components
    - Run periodic cycles for one user
    - Handle errors and shutdown gracefully
    """

    def __init__(self, user_id: str, config_dir: str = "config"):
        self.user_id = user_id
        self.config_dir = Path(config_dir)
        from tools.config_validator import validate_all_configs
        validation_errors = validate_all_configs(config_dir)
        if validation_errors:
            logger.error("=" * 80)
            logger.error("CONFIGURATION VALIDATION FAILED")
            logger.error("=" * 80)
            for idx, error in enumerate(validation_errors, start=1):
                lines = str(error).splitlines()
                if not lines:
                    continue
                logger.error(f"{idx:>2}. {lines[0]}")
            logger.error("=" * 80)
            raise ValueError(f"Invalid configuration: {len(validation_errors)} error(s) found")

        self.app_config = self._load_yaml("app.yaml")
        self.config = AppConfig(**self.app_config)

        self.loop_interval_seconds = self.config.loop.interval_seconds
        self.loop_jitter_pct = self.config.loop.jitter_pct

        # Logging setup
        log_file = self.config.logging.file
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            level=getattr(logging, self.config.logging.level.upper()),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
        )

        logger.info(f"Starting {self.config.app.name} for user={user_id}")

        state_cfg = self.config.state.model_dump()
        state_file_override = os.getenv("STATE_FILE")
        if state_file_override:
            state_cfg["path"] = state_file_override
        self.store = create_state_store_from_config(state_cfg)

        self.metrics = MetricsRecorder(
            enabled=self.config.monitoring.metrics_enabled,
            port=self.config.monitoring.metrics_port,
        )
        self.metrics.start()
        self.audit = AuditLogger(self.config.monitoring.audit_file)

        self.signer = WalletSigner.from_env(self.config.solana.wallet_key_env)
        jupiter_cfg = self.config.jupiter
        self.jupiter = JupiterClient(
            base_url=jupiter_cfg.base_url,
            timeout=jupiter_cfg.timeout_seconds,
            max_retries=jupiter_cfg.max_retries,
            default_slippage_bps=jupiter_cfg.slippage_bps,
            api_key=os.getenv(jupiter_cfg.api_key_env, ""),
        )
        solana_cfg = self.config.solana
        self.rpc = SolanaRpcClient(
            endpoint=self._rpc_endpoint(),
            timeout=solana_cfg.timeout_seconds,
            max_retries=solana_cfg.max_retries,
            commitment=solana_cfg.commitment,
            poll_interval=solana_cfg.poll_interval_seconds,
        )
        self.executor: Optional[SwapExecutor] = None
        if self.signer is not None:
            self.executor = SwapExecutor(
                self.jupiter,
                self.rpc,
                self.signer,
                slippage_bps=jupiter_cfg.slippage_bps,
                confirm_timeout_seconds=solana_cfg.confirm_timeout_seconds,
                metrics=self.metrics,
            )

        self.position_store = PositionStore(self.store)
        self.oracle = JupiterPriceOracle(self.jupiter, self.rpc)
        self.gate = SafetyGate(StoredSafetyOracle(self.store))
        self.monitor = PositionMonitor(self.position_store, self.oracle, self.executor, metrics=self.metrics)
        self.scanner = OpportunityScanner(
            self.store,
            self.position_store,
            self.gate,
            self.executor,
            candidate_limit=self.config.scanner.candidate_limit,
            metrics=self.metrics,
        )
        lock_cfg = self.config.lock
        self.coordinator = TradingCycleCoordinator(
            self.store,
            self.position_store,
            self.monitor,
            self.scanner,
            signer_public_key=self.signer.public_key if self.signer else None,
            lease_factory=lambda uid: CycleLease(uid, lock_dir=lock_cfg.dir, ttl_seconds=lock_cfg.lease_ttl_seconds),
            audit=self.audit,
            metrics=self.metrics,
        )

        self.instance_lock: Optional[SingleInstanceLock] = None
        self._running = True
        signal.signal(signal.SIGINT, self._handle_stop)
        signal.signal(signal.SIGTERM, self._handle_stop)

        logger.info(
            f"Initialized TradingLoop (store={self.store.describe()}, "
            f"signer={'loaded' if self.signer else 'missing'})"
        )

    def _handle_stop(self, *_):
        """Stop after the current cycle; an in-flight swap is always awaited."""
        logger.warning("Shutdown signal received, stopping after the current cycle")
        self._running = False

    def _load_yaml(self, filename: str) -> dict:
        path = self.config_dir / filename
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def _rpc_endpoint(self) -> str:
        """Wallet config may pin its own RPC endpoint; app.yaml is the fallback."""
        try:
            wallet = self.store.get_wallet_config(self.user_id)
        except Exception as e:
            logger.warning(f"Could not read wallet config for RPC endpoint: {e}")
            wallet = None
        if wallet and wallet.rpc_endpoint:
            return wallet.rpc_endpoint
        return self.config.solana.rpc_endpoint

    def _bot_active(self) -> bool:
        try:
            wallet = self.store.get_wallet_config(self.user_id)
        except Exception as e:
            logger.error(f"Could not read bot status for {self.user_id}: {e}")
            return False
        return bool(wallet and wallet.is_active)

    def run_cycle(self) -> Optional[CycleReport]:
        """One scheduled tick. Returns None when the bot is inactive."""
        if not self._bot_active():
            logger.info(f"Bot inactive for {self.user_id}, skipping cycle")
            return None
        return self.coordinator.run_cycle(self.user_id)

    def run_forever(self, interval_seconds: Optional[float] = None):
        """
        Run trading loop continuously with time-aware sleep.

        Args:
            interval_seconds: Seconds between cycle starts
        """
        self.instance_lock = SingleInstanceLock(f"launch-trader-{self.user_id}", lock_dir=self.config.lock.dir)
        if not self.instance_lock.acquire():
            raise RuntimeError(f"Another scheduler is already running for {self.user_id}")

        configured_interval = float(interval_seconds) if interval_seconds else self.loop_interval_seconds
        configured_interval = max(configured_interval, 1.0)

        logger.info(f"Starting continuous loop (interval={configured_interval}s, jitter={self.loop_jitter_pct:.1f}%)")

        try:
            while self._running:
                start = time.monotonic()
                try:
                    self.run_cycle()
                except Exception as e:
                    logger.exception(f"Cycle raised unexpectedly: {e}")
                elapsed = time.monotonic() - start

                # Jitter keeps many users' bots from ticking in lockstep
                jitter = random.uniform(0, self.loop_jitter_pct / 100.0) * configured_interval
                sleep_for = max(1.0, configured_interval - elapsed + jitter)

                logger.info(
                    f"Cycle took {elapsed:.2f}s, sleeping {sleep_for:.2f}s "
                    f"(jitter: +{jitter / configured_interval * 100.0:.1f}%)"
                )
                deadline = time.monotonic() + sleep_for
                while self._running and time.monotonic() < deadline:
                    time.sleep(min(1.0, deadline - time.monotonic()))
        finally:
            self.instance_lock.release()

        logger.info("Trading loop stopped cleanly.")

    def check_token(self, token_address: str):
        api_key = os.getenv(self.config.birdeye.api_key_env, "")
        birdeye = BirdeyeClient(
            api_key,
            base_url=self.config.birdeye.base_url,
            timeout=self.config.birdeye.timeout_seconds,
        )
        analyzer = TokenSafetyAnalyzer(birdeye, self.store, min_liquidity_usd=self.config.birdeye.min_liquidity_usd)
        return analyzer.analyze(token_address)


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def main():
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="launch-trader position manager")
    parser.add_argument("--user", help="User id (defaults to app.user_id in app.yaml)")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between cycles (default: loop.interval_seconds)")
    parser.add_argument("--config-dir", default="config", help="Config directory")
    command = parser.add_mutually_exclusive_group()
    command.add_argument("--start", action="store_true", help="Mark the bot active and exit")
    command.add_argument("--stop", action="store_true", help="Mark the bot inactive and exit")
    command.add_argument("--refresh", action="store_true", help="Refresh position prices and exit")
    command.add_argument("--check-token", metavar="ADDR", help="Run a safety analysis for a token and exit")

    args = parser.parse_args()

    user_id = args.user
    if not user_id:
        with open(Path(args.config_dir) / "app.yaml") as f:
            user_id = ((yaml.safe_load(f) or {}).get("app") or {}).get("user_id")
    if not user_id:
        parser.error("--user is required when app.user_id is not configured")

    loop = TradingLoop(user_id=user_id, config_dir=args.config_dir)

    if args.start:
        result = loop.coordinator.start(user_id)
        _print({"success": result.success, "message": result.message})
    elif args.stop:
        result = loop.coordinator.stop(user_id)
        _print({"success": result.success, "message": result.message})
    elif args.refresh:
        _print(loop.coordinator.refresh_positions(user_id).summary())
    elif args.check_token:
        record = loop.check_token(args.check_token)
        _print(record.to_row())
    elif args.once:
        _print(loop.coordinator.run_cycle(user_id).summary())
    else:
        loop.run_forever(interval_seconds=args.interval)


if __name__ == "__main__":
    main()

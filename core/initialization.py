"""
core/initialization.py
----------------------
Loads configuration from .env and wires all runtime components with simple
dependency-injection (DI) overrides.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from dotenv import load_dotenv

from modules.dedup_registry import DedupRegistry
from modules.position_manager import PositionManager
from modules.price_oracle import DexScreenerPriceOracle
from modules.scheduler import CycleScheduler
from modules.scorer import AdmissionScorer
from modules.source_aggregator import SourceAggregator
from modules.sources.bitquery import BitqueryPumpSource
from modules.sources.dexscreener import DexScreenerBoostSource
from modules.trade_ledger import TradeLedger
from modules.trader import PaperTrader
from notifiers.hub import NotifierHub
from utils.config_manager import ConfigManager
from utils.event_bus import EventBus


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    return float(raw) if raw not in (None, "") else default


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    return int(raw) if raw not in (None, "") else default


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a structured config dict.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    conf: Dict[str, object] = {
        "TRADING": {
            "snipe_amount": _env_float("SNIPE_AMOUNT", 0.03),
            "max_positions": _env_int("MAX_POSITIONS", 5),
            "admission_threshold": _env_int("ADMISSION_THRESHOLD", 60),
            "per_source_limit": _env_int("PER_SOURCE_LIMIT", 10),
        },
        "EXIT_PROFILES": {
            "early_pump_target": _env_float("EARLY_PUMP_TARGET", 20.0),
            "koth_target": _env_float("KOTH_TARGET", 8.0),
            "dex_fresh_target": _env_float("DEX_FRESH_TARGET", 4.0),
            "dex_target": _env_float("DEX_TARGET", 2.0),
            "pump_stop_loss": _env_float("PUMP_STOP_LOSS", 0.30),
            "dex_stop_loss": _env_float("DEX_STOP_LOSS", 0.40),
        },
        "SCHEDULER": {
            "cycle_interval": _env_float("CYCLE_INTERVAL", 20),
            "admission_pacing": _env_float("ADMISSION_PACING", 3),
        },
        "MONITOR": {
            "initial_delay": _env_float("MONITOR_INITIAL_DELAY", 10),
            "poll_interval": _env_float("MONITOR_POLL_INTERVAL", 15),
            "error_backoff": _env_float("MONITOR_ERROR_BACKOFF", 20),
            "sell_retry_delay": _env_float("SELL_RETRY_DELAY", 30),
            "max_sell_attempts": _env_int("SELL_MAX_ATTEMPTS", 5),
        },
        "TELEGRAM": {
            "token": os.getenv("TELEGRAM_BOT_TOKEN"),
            "chat_id": os.getenv("TELEGRAM_CHAT_ID"),
        },
        "BITQUERY": {
            "api_key": os.getenv("BITQUERY_API_KEY"),
            "url": os.getenv("BITQUERY_URL", "https://streaming.bitquery.io/graphql"),
            "lookback_minutes": _env_int("BITQUERY_LOOKBACK_MIN", 30),
            "limit": _env_int("BITQUERY_LIMIT", 10),
        },
        "DEXSCREENER": {
            "base_url": os.getenv("DEXSCREENER_BASE_URL", "https://api.dexscreener.com"),
            "chain": os.getenv("DEXSCREENER_CHAIN", "solana"),
        },
        "PAPER": {
            "balance": _env_float("PAPER_BALANCE", 1.0),
            "slippage_pct": _env_float("PAPER_SLIPPAGE_PCT", 0.01),
        },
        "HTTP_TIMEOUT": _env_float("HTTP_TIMEOUT", 8),
    }

    log.debug("Parsed TRADING: %s", conf["TRADING"])
    log.debug("Parsed EXIT_PROFILES: %s", conf["EXIT_PROFILES"])
    return conf


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None,
    ) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"registry", "ledger", "bus", "oracle", "venue", "sources", "aggregator",
     "scorer", "manager", "scheduler", "notifier"}
    """
    overrides = overrides or {}
    cfg = ConfigManager(config)
    logger = logger or logging.getLogger(__name__)
    timeout = cfg.get_http_timeout()

    # 1) State owned for the whole run
    # both define __len__, so an empty instance is falsy
    registry = overrides.get("registry")
    if registry is None:
        registry = DedupRegistry()
    ledger = overrides.get("ledger")
    if ledger is None:
        ledger = TradeLedger()
    bus = overrides.get("bus") or EventBus()

    # 2) Collaborators: price oracle and execution venue
    dex_cfg = cfg.get_dexscreener()
    oracle = overrides.get("oracle") or DexScreenerPriceOracle(
        base_url=dex_cfg["base_url"], chain=dex_cfg["chain"], timeout=timeout
    )
    venue = overrides.get("venue")
    if venue is None:
        paper = cfg.get_paper()
        venue = PaperTrader(oracle, balance=paper["balance"], slippage_pct=paper["slippage_pct"])

    # 3) Feed connectors, Bitquery only when a key is configured
    sources = overrides.get("sources")
    if sources is None:
        sources = []
        bq_cfg = cfg.get_bitquery()
        if bq_cfg["api_key"]:
            sources.append(BitqueryPumpSource(**bq_cfg, timeout=timeout))
        else:
            logger.info("BitqueryPumpSource disabled, BITQUERY_API_KEY not set")
        sources.append(
            DexScreenerBoostSource(base_url=dex_cfg["base_url"], chain=dex_cfg["chain"], timeout=timeout)
        )

    # 4) Engine
    manager = overrides.get("manager") or PositionManager(
        venue,
        oracle,
        ledger,
        registry,
        budget=cfg.get_budget(),
        max_positions=cfg.get_max_positions(),
        exit_profiles=cfg.get_exit_profiles(),
        monitor_settings=cfg.get_monitor_settings(),
        bus=bus,
    )
    aggregator = overrides.get("aggregator") or SourceAggregator(
        sources, registry, is_open=manager.is_open, per_source_limit=cfg.get_per_source_limit()
    )
    scorer = overrides.get("scorer") or AdmissionScorer(
        threshold=cfg.get_admission_threshold(), max_positions=cfg.get_max_positions()
    )
    scheduler = overrides.get("scheduler") or CycleScheduler(
        aggregator, scorer, manager, ledger,
        venue=venue, settings=cfg.get_scheduler_settings(), bus=bus,
    )

    # 5) Notifications
    notifier = overrides.get("notifier") or NotifierHub(config)
    notifier.attach(bus)

    logger.info("✅ Sources initialized: %s", ", ".join(s.name for s in sources) or "none")
    logger.info("✅ Venue initialized: %s", venue.__class__.__name__)
    logger.info("✅ PositionManager initialized (max %d, %.4f per trade)",
                manager.max_positions, manager.budget)
    logger.info("✅ NotifierHub initialized with %d back-end(s)", len(notifier.backends))

    return {
        "config": cfg,
        "registry": registry,
        "ledger": ledger,
        "bus": bus,
        "oracle": oracle,
        "venue": venue,
        "sources": sources,
        "aggregator": aggregator,
        "scorer": scorer,
        "manager": manager,
        "scheduler": scheduler,
        "notifier": notifier,
    }

from typing import Any, Dict

from models.candidate import SourceTag
from modules.exit_monitor import MonitorSettings
from modules.position_manager import DEFAULT_EXIT_PROFILES, ExitProfile
from modules.scheduler import SchedulerSettings


class ConfigManager:
    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name) or {}

    # trading --------------------------------------------------------------
    def get_budget(self) -> float:
        return float(self.section("TRADING").get("snipe_amount", 0.03))

    def get_max_positions(self) -> int:
        return int(self.section("TRADING").get("max_positions", 5))

    def get_admission_threshold(self) -> int:
        return int(self.section("TRADING").get("admission_threshold", 60))

    def get_per_source_limit(self) -> int:
        return int(self.section("TRADING").get("per_source_limit", 10))

    def get_exit_profiles(self) -> Dict[SourceTag, ExitProfile]:
        cfg = self.section("EXIT_PROFILES")
        if not cfg:
            return dict(DEFAULT_EXIT_PROFILES)
        pump_stop = float(cfg.get("pump_stop_loss", 0.30))
        dex_stop = float(cfg.get("dex_stop_loss", 0.40))
        return {
            SourceTag.PUMP_EARLY: ExitProfile(float(cfg.get("early_pump_target", 20.0)), pump_stop),
            SourceTag.KING_OF_HILL: ExitProfile(float(cfg.get("koth_target", 8.0)), pump_stop),
            SourceTag.DEX_FRESH: ExitProfile(float(cfg.get("dex_fresh_target", 4.0)), dex_stop),
            SourceTag.DEX: ExitProfile(float(cfg.get("dex_target", 2.0)), dex_stop),
        }

    # timing ---------------------------------------------------------------
    def get_monitor_settings(self) -> MonitorSettings:
        cfg = self.section("MONITOR")
        defaults = MonitorSettings()
        return MonitorSettings(
            initial_delay=float(cfg.get("initial_delay", defaults.initial_delay)),
            poll_interval=float(cfg.get("poll_interval", defaults.poll_interval)),
            error_backoff=float(cfg.get("error_backoff", defaults.error_backoff)),
            sell_retry_delay=float(cfg.get("sell_retry_delay", defaults.sell_retry_delay)),
            max_sell_attempts=int(cfg.get("max_sell_attempts", defaults.max_sell_attempts)),
        )

    def get_scheduler_settings(self) -> SchedulerSettings:
        cfg = self.section("SCHEDULER")
        defaults = SchedulerSettings()
        return SchedulerSettings(
            cycle_interval=float(cfg.get("cycle_interval", defaults.cycle_interval)),
            admission_pacing=float(cfg.get("admission_pacing", defaults.admission_pacing)),
        )

    # collaborators --------------------------------------------------------
    def get_http_timeout(self) -> float:
        return float(self.config.get("HTTP_TIMEOUT", 8))

    def get_bitquery(self) -> Dict[str, Any]:
        cfg = self.section("BITQUERY")
        return {
            "api_key": cfg.get("api_key") or "",
            "url": cfg.get("url") or "https://streaming.bitquery.io/graphql",
            "lookback_minutes": int(cfg.get("lookback_minutes", 30)),
            "limit": int(cfg.get("limit", 10)),
        }

    def get_dexscreener(self) -> Dict[str, Any]:
        cfg = self.section("DEXSCREENER")
        return {
            "base_url": cfg.get("base_url") or "https://api.dexscreener.com",
            "chain": cfg.get("chain") or "solana",
        }

    def get_paper(self) -> Dict[str, float]:
        cfg = self.section("PAPER")
        return {
            "balance": float(cfg.get("balance", 1.0)),
            "slippage_pct": float(cfg.get("slippage_pct", 0.01)),
        }

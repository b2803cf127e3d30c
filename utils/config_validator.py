from numbers import Real


def _number(section: dict, key: str, where: str) -> float:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{where}.{key} must be a number, got {value!r}")
    return float(value)


def validate_config(config: dict):
    required_keys = [
        "TRADING",
        "EXIT_PROFILES",
        "SCHEDULER",
        "MONITOR",
    ]

    missing = [k for k in required_keys if k not in config or not config[k]]
    if missing:
        raise ValueError(f"Missing required configuration keys: {missing}")

    for key in required_keys:
        if not isinstance(config[key], dict):
            raise TypeError(f"{key} must be a dictionary.")

    trading = config["TRADING"]
    if _number(trading, "snipe_amount", "TRADING") <= 0:
        raise ValueError("TRADING.snipe_amount must be positive.")
    if _number(trading, "max_positions", "TRADING") < 1:
        raise ValueError("TRADING.max_positions must be at least 1.")
    if _number(trading, "per_source_limit", "TRADING") < 1:
        raise ValueError("TRADING.per_source_limit must be at least 1.")
    _number(trading, "admission_threshold", "TRADING")

    profiles = config["EXIT_PROFILES"]
    for key in ("early_pump_target", "koth_target", "dex_fresh_target", "dex_target"):
        if _number(profiles, key, "EXIT_PROFILES") <= 1.0:
            raise ValueError(f"EXIT_PROFILES.{key} must be above 1.0.")
    for key in ("pump_stop_loss", "dex_stop_loss"):
        stop = _number(profiles, key, "EXIT_PROFILES")
        if not 0.0 < stop < 1.0:
            raise ValueError(f"EXIT_PROFILES.{key} must be between 0 and 1.")

    for key in ("cycle_interval", "admission_pacing"):
        if _number(config["SCHEDULER"], key, "SCHEDULER") < 0:
            raise ValueError(f"SCHEDULER.{key} must not be negative.")

    monitor = config["MONITOR"]
    for key in ("initial_delay", "poll_interval", "error_backoff", "sell_retry_delay"):
        if _number(monitor, key, "MONITOR") < 0:
            raise ValueError(f"MONITOR.{key} must not be negative.")
    if _number(monitor, "max_sell_attempts", "MONITOR") < 1:
        raise ValueError("MONITOR.max_sell_attempts must be at least 1.")

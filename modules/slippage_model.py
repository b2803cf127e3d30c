from typing import Literal


def apply_slippage(price: float, side: Literal["buy", "sell"], slippage_pct: float = 0.01) -> float:
    # Buys fill above the reference price, sells below it
    if slippage_pct < 0:
        raise ValueError("slippage_pct must be >= 0")
    if side == "buy":
        return price * (1 + slippage_pct)
    return price * (1 - slippage_pct)

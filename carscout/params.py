"""
Parameter resolution: market settings merged over configured defaults.
"""
import math
from typing import Iterable, Optional, Sequence

from .config import ScraperConfig
from .models import Market, MarketParams, MarketSettingsType


def get_market_setting(market: Market, name) -> Optional[str]:
    """Return a market setting value or None when absent."""
    return market.setting(name)


def _numeric(value, default: float) -> float:
    # Absent, non-numeric, non-finite and zero values all fall back
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(str(value).strip().replace(",", ""))
    except ValueError:
        return default
    if not math.isfinite(number) or number == 0:
        return default
    return number


def resolve_params(market: Market, config: ScraperConfig) -> MarketParams:
    """Resolve the numeric search bounds for ``market``."""
    setting = market.setting
    return MarketParams(
        min_price=config.min_price,
        max_price=_numeric(setting(MarketSettingsType.SEARCH_MAX_PRICE), config.max_price),
        max_mileage=_numeric(setting(MarketSettingsType.SEARCH_MAX_MILEAGE), config.max_mileage),
        min_year=int(_numeric(setting(MarketSettingsType.SEARCH_MIN_YEAR), config.min_year)),
        max_year=int(_numeric(setting(MarketSettingsType.SEARCH_MAX_YEAR), config.max_year)),
        search_radius=_numeric(setting(MarketSettingsType.SEARCH_RADIUS), config.search_radius),
        days_since_listed=int(config.days_since_listed),
    )


def take_nearest_radius(goal: float, radiuses: Iterable[float]) -> float:
    """
    Pick the supported radius closest to ``goal``.

    Ties go to the first candidate in iteration order.
    """
    candidates: Sequence[float] = list(radiuses)
    if not candidates:
        raise ValueError("No supported radius values")
    return min(candidates, key=lambda r: abs(r - goal))

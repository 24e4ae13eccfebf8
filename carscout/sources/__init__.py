"""
Source adapters, selected through a static registry keyed by source id.
"""
from typing import Dict, Type

from ..errors import ConfigurationError
from ..models import ScraperType
from .autotrader import AutotraderAdapter
from .base import SourceAdapter, SourcePage, SourceSession
from .cargurus import CarGurusAdapter
from .cars_com import CarsComAdapter
from .craigslist import CraigslistAdapter
from .facebook import FacebookAdapter
from .ksl import KslAdapter

SOURCE_REGISTRY: Dict[ScraperType, Type[SourceAdapter]] = {
    ScraperType.AUTOTRADER: AutotraderAdapter,
    ScraperType.CARGURUS: CarGurusAdapter,
    ScraperType.CARS_COM: CarsComAdapter,
    ScraperType.CRAIGSLIST: CraigslistAdapter,
    ScraperType.FACEBOOK: FacebookAdapter,
    ScraperType.KSL: KslAdapter,
}


def get_adapter_class(source, registry: Dict[ScraperType, Type[SourceAdapter]] = None) -> Type[SourceAdapter]:
    """Look up an adapter class; unknown ids are configuration errors."""
    registry = SOURCE_REGISTRY if registry is None else registry
    try:
        key = source if isinstance(source, ScraperType) else ScraperType(str(source).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown scraper type: {source}") from None
    if key not in registry:
        raise ConfigurationError(f"Unknown scraper type: {source}")
    return registry[key]


__all__ = [
    "SOURCE_REGISTRY",
    "SourceAdapter",
    "SourcePage",
    "SourceSession",
    "get_adapter_class",
]

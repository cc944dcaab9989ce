"""Register all event adapters with a factory.

Call create_adapter_factory() (or register_all_adapters() on a factory built
with custom collaborators) once at startup.
"""

from typing import Optional

import structlog

from eventsync.scrapers.adapters import (
    AlleventsAdapter,
    ExplaraAdapter,
    PaytmInsiderAdapter,
    TownscriptAdapter,
)
from eventsync.scrapers.factory import AdapterFactory

logger = structlog.get_logger(__name__)


def register_all_adapters(factory: AdapterFactory) -> AdapterFactory:
    """Register all available adapters with the factory."""
    adapters = [
        # Static HTML sources
        ("allevents", AlleventsAdapter),
        ("explara", ExplaraAdapter),
        ("townscript", TownscriptAdapter),
        # JavaScript-rendered sources
        ("paytm-insider", PaytmInsiderAdapter),
    ]

    for platform, adapter_class in adapters:
        try:
            factory.register_adapter(platform, adapter_class)
        except Exception as e:
            logger.error(
                "adapter_registration_failed",
                platform=platform,
                error=str(e),
                exc_info=True,
            )

    logger.info(
        "all_adapters_registered",
        count=len(factory.get_registered_platforms()),
        platforms=factory.get_registered_platforms(),
    )
    return factory


def create_adapter_factory(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Build a factory with default collaborators and every adapter registered."""
    return register_all_adapters(factory or AdapterFactory())

"""Platform-specific event source adapters."""

from eventsync.scrapers.adapters.allevents import AlleventsAdapter
from eventsync.scrapers.adapters.explara import ExplaraAdapter
from eventsync.scrapers.adapters.paytm_insider import PaytmInsiderAdapter
from eventsync.scrapers.adapters.townscript import TownscriptAdapter

__all__ = [
    "AlleventsAdapter",
    "ExplaraAdapter",
    "PaytmInsiderAdapter",
    "TownscriptAdapter",
]

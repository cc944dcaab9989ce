"""EventSync - multi-platform event ingestion pipeline.

Fetches event listings from external ticketing and listing sites, normalizes
them into StandardizedEvent records, validates and de-duplicates them, and
hands the clean candidate list to a persistence collaborator.
"""

__version__ = "0.1.0"

"""Scraper utilities for request pacing, robots checks, and data normalization."""

from .rate_queue import RateLimitConfig, RateLimitedQueue, create_default_queue
from .robots import AccessDecision, AllowAllChecker, RobotsChecker
from .scraper_logger import ScraperLogger
from .user_agents import get_random_user_agent, USER_AGENTS
from .normalizer import (
    build_external_id,
    canonicalize_url,
    map_category,
    parse_listing_date,
    sanitize_price,
    CATEGORY_MAPPING,
)


__all__ = [
    # Request pacing
    "RateLimitConfig",
    "RateLimitedQueue",
    "create_default_queue",
    # Robots policy
    "AccessDecision",
    "AllowAllChecker",
    "RobotsChecker",
    # Activity log
    "ScraperLogger",
    # User agents
    "get_random_user_agent",
    "USER_AGENTS",
    # Normalization
    "build_external_id",
    "canonicalize_url",
    "map_category",
    "parse_listing_date",
    "sanitize_price",
    "CATEGORY_MAPPING",
]

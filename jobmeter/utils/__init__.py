"""
Shared utility functions.
"""

from jobmeter.utils.config_helpers import load_scraper_config, merge_configs

__all__ = [
    # Configuration utilities
    "merge_configs",
    "load_scraper_config",
]

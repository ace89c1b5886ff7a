import os
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv
from omegaconf import OmegaConf
from omegaconf.dictconfig import DictConfig

load_dotenv()
CONFIG_PATH = Path(os.getenv("CONFIG_PATH", "config"))


def merge_configs(config_paths: List[Union[str, Path]]) -> DictConfig:
    """
    Merge multiple YAML configuration files with precedence. Later configs override earlier ones. Useful for applying overrides to base configs.

    Args:
        config_paths: List of paths to YAML config files. Later configs take precedence.

    Returns:
        DictConfig: Merged configuration object

    Raises:
        ValueError: If config_paths is empty

    Example:
        >>> config = merge_configs(["config/scraper.yaml", "config/scraper.local.yaml"])
        >>> scraper = JobCountScraper(registry, store, extractor, config)
    """
    if not config_paths:
        raise ValueError("config_paths is empty!")

    # Load first config as base
    merged = OmegaConf.load(config_paths[0])

    # Merge remaining configs with precedence
    for config_path in config_paths[1:]:
        config = OmegaConf.load(config_path)
        merged = OmegaConf.unsafe_merge(merged, config)

    return merged


def load_scraper_config(
    overrides: Optional[List[Union[str, Path]]] = None,
    config_dir: Path = CONFIG_PATH,
) -> DictConfig:
    """
    Load ``scraper.yaml`` from the config directory, applying any override files on top.

    Args:
        overrides: Extra YAML files merged over the base config, in order
        config_dir: Directory holding scraper.yaml (default: CONFIG_PATH from environment)
    """
    return merge_configs([config_dir / "scraper.yaml", *(overrides or [])])

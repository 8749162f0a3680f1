"""Configuration: environment Settings and the layered YAML loader.

``Settings`` reads the environment and ``.env``; ``load_config`` lays those
values over ``config/config.yaml`` and returns the resolved sections that
``src.main`` wires the services from.
"""

from src.config.loader import load_config
from src.config.settings import Settings

__all__ = ["Settings", "load_config"]

# Utility and helper modules

from .config import get_config_text, parse_algorithm_info

__all__ = ["get_config_text", "parse_algorithm_info"]

"""
Configuration module for polyrun.
"""
from polyrun.config.logging import setup_logging
from polyrun.config.engine import EngineConfig

__all__ = ["setup_logging", "EngineConfig"]

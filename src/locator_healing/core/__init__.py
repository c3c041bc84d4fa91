"""
Core module for locator healing.

This module contains:
- config.py: Environment settings
- config_loader.py: YAML self-healing configuration
- logging_config.py: Structured logging configuration
- errors.py: Exception hierarchy
"""

__all__ = ["config", "config_loader", "logging_config", "errors"]

"""
Configuration management for agent_registry.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for network, RPC and
confirmation settings.
"""

from agent_registry.config.settings import Settings, get_settings, reset_settings  # noqa: F401

__all__ = ["Settings", "get_settings", "reset_settings"]

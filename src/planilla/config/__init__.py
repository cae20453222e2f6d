"""Configuration module for Planilla."""

from planilla.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]

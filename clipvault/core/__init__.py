"""
Core module - Contains configuration, logging, and cryptographic components.
"""

from clipvault.core.config import ClipvaultConfig
from clipvault.core.logging import configure_logging, get_secure_logger, SecureLogFilter

__all__ = ["ClipvaultConfig", "configure_logging", "get_secure_logger", "SecureLogFilter"]

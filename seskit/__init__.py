"""seskit - Evidentiary core for Simple Electronic Signatures (SES).

Turns raw signing events into tamper-evident, hash-chained evidence that can be
verified and exported years later.
"""

__version__ = "0.1.0"
__author__ = "seskit Contributors"

from seskit.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]

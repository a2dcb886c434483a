"""Keyforge API key server"""

__version__ = "0.1.0"

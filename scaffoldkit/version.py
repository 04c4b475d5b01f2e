"""Installed scaffoldkit version, checked against pack compatibility ranges."""

__version__ = "0.4.0"

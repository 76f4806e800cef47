"""
feedwarden - threat intelligence feed ingestion and normalization.
"""

__version__ = "1.0.0"

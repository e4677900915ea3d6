"""
Immostats - Core Package

This package contains the DVF transaction ingestion pipeline, its scheduler,
and the market statistics API built on the stored transactions.
"""

__version__ = "0.1.0"

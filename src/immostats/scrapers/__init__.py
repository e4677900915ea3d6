"""
Scrapers Package

Source clients for real estate transaction feeds: the DVF open data API and
an offline demo generator sharing the same fetch_partition contract.
"""

from .dvf_client import DVFClient
from .demo_source import DemoSource

__all__ = [
    "DVFClient",
    "DemoSource",
]

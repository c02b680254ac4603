"""
Cyber Vault Package

This package provides clients for third-party threat intelligence and OSINT
APIs, plus the aggregation, caching and fallback logic the dashboard uses.
"""

__version__ = "1.0.0"

from .threat_aggregation import ThreatAggregator

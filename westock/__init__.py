"""
WeStock

Local-first inventory store with optional Cosmos DB mirroring and
token-based bundle sharing.
"""

__version__ = "1.0.0"

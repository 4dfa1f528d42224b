"""indexer

Derived-state indexer for the onchain commerce protocol.
"""

__version__ = "0.3.0"

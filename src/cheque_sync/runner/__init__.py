"""
CLI runner module.

Provides commands:
- collections: Create, rename, pin, delete, duplicate and select collections
- rows: List, count and clear rows
- ingest: Extract cheques from a saved response body
- capture: Fetch a page with the interceptor installed
- reconcile: Compare two sources of one collection
- export / import: JSON and CSV exchange
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]

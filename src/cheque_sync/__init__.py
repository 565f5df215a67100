"""
Network response → Cheque extraction → Versioned store → Reconciliation

Observes HTTP traffic made through requests/httpx, extracts cheque records
from cheque-search HTML tables and Costviser JSON payloads, persists them into
scope-isolated collections, and reconciles two sources against each other.
"""

__version__ = "0.1.0"

"""
Fakturo - Invoicing Engine

Invoice calculation, currency reconciliation, status derivation and
time-entry invoicing behind a FastAPI application.
"""

__version__ = "0.1.0"

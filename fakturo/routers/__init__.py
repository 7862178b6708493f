"""
Fakturo - Routers Package

FastAPI route handlers.

Routers:
- invoices: Invoice calculation, management and time-entry invoicing
- time_entries: Time tracking and timers
- fx: Exchange rates and conversion
"""

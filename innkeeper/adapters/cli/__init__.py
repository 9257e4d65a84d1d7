"""Command-line interface adapters.

Provides CLI commands for operating Innkeeper:
- create-unit, update-unit, delete-unit, search, available: unit management
- book, confirm, cancel, bookings: booking lifecycle
- pay, process-payment, refund, fail-payment: payment records
- sweep: run the expiry and completion sweeps once
"""

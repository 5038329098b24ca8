"""Service layer: schedule store, spreadsheet import, bookings and users.

Handlers and API endpoints import the concrete modules directly.
"""

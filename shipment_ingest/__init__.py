"""Shipment ingest: spreadsheet exports -> normalized shipment records in PostgreSQL."""

__version__ = "0.1.0"

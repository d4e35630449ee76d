"""Batch quality logbook: conformance evaluation, lot identifiers and dashboards."""

__version__ = "0.1.0"

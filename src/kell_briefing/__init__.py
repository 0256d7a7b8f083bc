"""Kell briefing delivery pipeline and signup ingestion."""

__version__ = "0.1.0"

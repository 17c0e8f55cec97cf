"""Clarity Engine - batch enrichment pipeline for payee records."""

__version__ = "0.1.0"

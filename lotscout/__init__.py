"""Auction lot crawler with LLM-backed category probabilities."""

__version__ = "0.1.0"

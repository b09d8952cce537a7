"""Run API test scenarios against a live service."""

__version__ = "0.1.0"

"""Concierge: orchestration core of a tool-using personal assistant."""

__version__ = "0.1.0"

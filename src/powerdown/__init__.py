"""Countdown-driven executor for host power actions."""

__version__ = "0.1.0"

"""Fincoach: a conversational financial coach with human-in-the-loop tool calling."""

__version__ = "0.1.0"

"""DealDesk tool-call dispatch core."""

__version__ = "0.4.0"

"""Parse, filter and aggregate Zeek/Bro network logs for threat hunting."""

__version__ = "0.1.0"
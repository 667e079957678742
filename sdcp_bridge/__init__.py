"""Bridge between SDCP printers and an external state store."""

__version__ = "0.1.0"

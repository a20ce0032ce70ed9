"""XL2 acoustic measurement station."""

__version__ = "1.0.0"

"""Core of the XL2 station: devices, health, fan-out and shutdown."""

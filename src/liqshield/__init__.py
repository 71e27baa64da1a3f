"""LiqShield: automated liquidation protection for lending protocol positions."""

__version__ = "1.0.0"

"""Lending protocol account state, fixed-point math, fees, interest and binary layouts."""

__version__ = "0.1.0"
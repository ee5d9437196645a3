"""Formulary — formula resolution, livecheck and build orchestration."""

__version__ = "0.1.0"

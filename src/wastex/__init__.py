"""WasteEx deal engine: matching, negotiation, contracts and escrow settlement."""

__version__ = "0.1.0"

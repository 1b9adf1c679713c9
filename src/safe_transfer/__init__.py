"""Safe Transfer: escrow deals between a buyer and a seller, with KYC."""

__version__ = "0.1.0"

from .ledger import TokenLedger
from .permit_token import PermitToken

__all__ = [
    "TokenLedger",
    "PermitToken",
]

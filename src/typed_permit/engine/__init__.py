from .events import (
    BaseEvent,
    EventBus,
    TransferEvent,
    ApprovalEvent,
    PermitUsedEvent,
    TransferWithPermitEvent,
)
from .exceptions import (
    BaseException,
    PaymentVerificationError,
    PermitExpiredError,
    SignatureVerificationError,
    InsufficientFundsError,
    InsufficientAllowanceError,
    MalformedArgumentsError,
    ConfigurationError,
    BlockchainInteractionError,
)

__all__ = [
    "BaseEvent",
    "EventBus",
    "TransferEvent",
    "ApprovalEvent",
    "PermitUsedEvent",
    "TransferWithPermitEvent",
    "BaseException",
    "PaymentVerificationError",
    "PermitExpiredError",
    "SignatureVerificationError",
    "InsufficientFundsError",
    "InsufficientAllowanceError",
    "MalformedArgumentsError",
    "ConfigurationError",
    "BlockchainInteractionError",
]

"""
Exception and Error Definitions Module

Defines the exception hierarchy for typed-data authorization: structured
hashing, signature verification, the nonce/deadline gate and the ledger
collaborator. All exceptions inherit from BaseException for unified
exception handling at the call boundary.

Exception Hierarchy:
    BaseException (root)
    ├── PaymentVerificationError
    │   ├── PermitExpiredError
    │   ├── SignatureVerificationError
    │   ├── InsufficientFundsError
    │   ├── InsufficientAllowanceError
    │   └── MalformedArgumentsError
    ├── ConfigurationError
    └── BlockchainInteractionError
"""

from typing import Optional


class BaseException(Exception):
    """
    Root exception class for all project-specific exceptions.

    Every rejection raised by an entry point is a subclass of this class, so
    a relayer can catch a single type and decide whether to resubmit.
    """
    pass


class PaymentVerificationError(BaseException):
    """
    Base exception for refused authorizations.

    Parent class for all errors raised while gating a state change. When one
    of these is raised no state has been mutated.
    """
    pass


class PermitExpiredError(PaymentVerificationError):
    """
    Raised when the current time is past the authorization deadline.

    Attributes:
        deadline: The expired deadline carried by the message
        current_time: Timestamp observed by the gate
    """

    def __init__(self, message: str, *, deadline: Optional[int] = None, current_time: Optional[int] = None):
        super().__init__(message)
        self.deadline = deadline
        self.current_time = current_time


class SignatureVerificationError(PaymentVerificationError):
    """
    Raised when signature verification fails.

    This includes scenarios such as:
    - Signature recovers to an address other than the claimed signer
    - Signature recovers to the zero address
    - Signature produced over a stale nonce (replay)
    - Signature produced under another domain (chain or contract)

    Attributes:
        signer: Expected signer address
        recovered: Address recovered from the signature, if any
    """

    def __init__(self, message: str, *, signer: Optional[str] = None, recovered: Optional[str] = None):
        super().__init__(message)
        self.signer = signer
        self.recovered = recovered


class InsufficientFundsError(PaymentVerificationError):
    """
    Raised when an account balance is lower than the amount to move.

    Attributes:
        required: Amount required
        available: Amount available
    """

    def __init__(self, message: str, *, required: Optional[int] = None, available: Optional[int] = None):
        super().__init__(message)
        self.required = required
        self.available = available


class InsufficientAllowanceError(PaymentVerificationError):
    """
    Raised when ``transfer_from`` exceeds the spender's allowance.

    Attributes:
        required: Amount required
        available: Allowance available
    """

    def __init__(self, message: str, *, required: Optional[int] = None, available: Optional[int] = None):
        super().__init__(message)
        self.required = required
        self.available = available


class MalformedArgumentsError(PaymentVerificationError, ValueError):
    """
    Raised when an argument cannot be encoded or is out of range.

    This includes scenarios such as:
    - Signature ``v`` not a valid recovery id
    - Signature ``r``/``s`` outside the secp256k1 scalar range
    - Negative or larger-than-uint256 integers
    - Addresses that are not 20-byte hex strings
    - Hashes that are not exactly 32 bytes
    """
    pass


class ConfigurationError(BaseException):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Non-integer chain id in the environment
    - Malformed verifying contract address
    - Unsupported token decimals
    """
    pass


class BlockchainInteractionError(BaseException):
    """
    Raised when an RPC call against a deployed instance fails.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - Contract call revert or missing selector

    Attributes:
        rpc_method: Contract function that was called
        reason: Error reason from the node
    """

    def __init__(self, message: str, *, rpc_method: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.rpc_method = rpc_method
        self.reason = reason

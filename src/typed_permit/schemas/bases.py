"""
Base Schema Models for typed_permit

This module defines the base classes that all other schema models inherit
from. It provides type safety, validation and consistent serialization for
signatures, signed authorizations and verification results.

Core Classes:
    - CanonicalModel: RFC8785-compliant Pydantic base model for cryptographic operations
    - BaseSignature: Abstract signature component model
    - BasePermit: Abstract signed-authorization model
    - VerificationStatus: Outcome codes shared by every verifier
    - BaseVerificationResult: Abstract verification result model

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from typing import Optional, Dict, Any
from abc import ABC
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    RFC8785-compliant Pydantic base model with canonical JSON serialization.

    Ensures a deterministic JSON representation (sorted keys, no extra
    whitespace) so authorizations can be stored, logged and relayed without
    the payload changing shape between hops.

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        model = MyModel(name="test", value=123)
        canonical_json = model.to_canonical_json()  # '{"name":"test","value":123}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to RFC8785-compliant canonical JSON string.

        ``model_dump(mode="json")`` converts nested models, enums and
        datetimes to plain types, then ``json.dumps`` with sorted keys and
        compact separators produces the canonical form.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json")
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump()


class BaseSignature(CanonicalModel, ABC):
    """
    Abstract base class for signature components.

    Concrete signature classes describe the wire form of one signature scheme
    (for EVM: the three ECDSA components v, r, s).

    Attributes:
        signature_type: The signing standard (e.g. "EIP712Permit")
        created_at: Timestamp when the signature was created
    """

    signature_type: str = Field(..., description="Signing standard identifier")
    created_at: datetime = Field(default_factory=datetime.now, description="Signature creation timestamp")

    def validate_format(self) -> bool:
        """
        Validate the signature format.

        Returns:
            bool: True if signature format is valid.

        Raises:
            ValueError: If signature format is invalid with descriptive message.
        """
        return True


class BasePermit(CanonicalModel, ABC):
    """
    Abstract base class for signed authorizations.

    An authorization is a message signed off-chain by an account holder and
    later presented by a relayer to a state-mutating entry point.

    Attributes:
        permit_type: Message kind (e.g. "Permit", "Transfer")
        signature: Signature components, ``None`` before signing
        created_at: Timestamp when the authorization was created
    """

    permit_type: str = Field(..., description="Message kind (e.g. Permit, Transfer)")
    signature: Optional[BaseSignature] = Field(None, description="Signature components")
    created_at: datetime = Field(default_factory=datetime.now, description="Authorization creation timestamp")

    def validate_structure(self) -> bool:
        """
        Validate the authorization structure and required fields.

        Returns:
            bool: True if the structure is valid.

        Raises:
            ValueError: If the structure is invalid with descriptive message.
        """
        return True


class VerificationStatus(str, Enum):
    """
    Enumeration of possible verification result statuses.

    Attributes:
        SUCCESS: Signature is valid and every gate passed
        INVALID_SIGNATURE: Signature is invalid or signer mismatch
        EXPIRED: Deadline has passed
        INSUFFICIENT_BALANCE: Balance insufficient for the transfer
        REPLAY_ATTACK: Nonce does not match the account's current nonce
        MALFORMED_ARGUMENTS: An argument could not be encoded or is out of range
        UNKNOWN_ERROR: Unexpected error during verification
    """
    SUCCESS = "success"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    REPLAY_ATTACK = "replay_attack"
    MALFORMED_ARGUMENTS = "malformed_arguments"
    UNKNOWN_ERROR = "unknown_error"


class BaseVerificationResult(CanonicalModel, ABC):
    """
    Abstract base class for signature verification results.

    Result-style verifiers return one of these instead of raising, so that a
    relayer can inspect why an authorization would be refused before
    submitting it.

    Attributes:
        verification_type: Type of verification (e.g. "evm")
        status: Verification result status
        is_valid: Whether verification was successful
        message: Human-readable status message
        error_details: Detailed error information if verification failed
        verified_at: Timestamp when verification was performed
    """

    verification_type: str = Field(..., description="Type of verification (e.g., evm)")
    status: VerificationStatus = Field(..., description="Verification result status")
    is_valid: bool = Field(..., description="Whether the authorization is valid")
    message: str = Field(..., description="Human-readable status message")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Detailed error information")
    verified_at: datetime = Field(default_factory=datetime.now, description="Verification timestamp")

    def is_success(self) -> bool:
        """
        Check if verification was successful.

        Returns:
            bool: True if verification was successful, False otherwise.
        """
        return self.is_valid and self.status == VerificationStatus.SUCCESS

    def get_error_message(self) -> Optional[str]:
        """
        Get formatted error message from verification result.

        Returns:
            Optional[str]: Error message if verification failed, None if successful.
        """
        if self.is_success():
            return None

        error_msg = f"Verification failed: {self.message}"
        if self.error_details:
            details_str = json.dumps(self.error_details, indent=2, default=str)
            error_msg += f"\nDetails: {details_str}"
        return error_msg

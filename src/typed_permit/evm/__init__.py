from .standards import (
    TypeSchema,
    EIP712Domain,
    EIP712TypedData,
    PermitMessage,
    TransferMessage,
    EIP712_DOMAIN_SCHEMA,
    PERMIT_SCHEMA,
    TRANSFER_SCHEMA,
    EIP712_DOMAIN_TYPEHASH,
    PERMIT_TYPEHASH,
    TRANSFER_TYPEHASH,
)
from .hashing import (
    domain_separator,
    struct_hash,
    message_hash,
    permit_hash,
    transfer_hash,
    typed_data_digest,
    hash_typed_data,
)
from .schemas import (
    EVMECDSASignature,
    PermitAuthorization,
    TransferAuthorization,
    EVMVerificationResult,
)
from .signatures import (
    build_permit_typed_data,
    build_transfer_typed_data,
    sign_permit,
    sign_transfer,
    recover_typed_data_signer,
)
from .verifies import (
    SignerRecoverer,
    EthKeysRecoverer,
    validate_signature_components,
    recover_signer,
    verify_signer,
    verify_permit,
    verify_transfer,
)
from .constants import TokenConfig, load_token_config, amount_to_value, value_to_amount
from .onchain import DeploymentCheck, check_deployment, query_domain_separator, query_nonce

__all__ = [
    "TypeSchema",
    "EIP712Domain",
    "EIP712TypedData",
    "PermitMessage",
    "TransferMessage",
    "EIP712_DOMAIN_SCHEMA",
    "PERMIT_SCHEMA",
    "TRANSFER_SCHEMA",
    "EIP712_DOMAIN_TYPEHASH",
    "PERMIT_TYPEHASH",
    "TRANSFER_TYPEHASH",
    "domain_separator",
    "struct_hash",
    "message_hash",
    "permit_hash",
    "transfer_hash",
    "typed_data_digest",
    "hash_typed_data",
    "EVMECDSASignature",
    "PermitAuthorization",
    "TransferAuthorization",
    "EVMVerificationResult",
    "build_permit_typed_data",
    "build_transfer_typed_data",
    "sign_permit",
    "sign_transfer",
    "recover_typed_data_signer",
    "SignerRecoverer",
    "EthKeysRecoverer",
    "validate_signature_components",
    "recover_signer",
    "verify_signer",
    "verify_permit",
    "verify_transfer",
    "TokenConfig",
    "load_token_config",
    "amount_to_value",
    "value_to_amount",
    "DeploymentCheck",
    "check_deployment",
    "query_domain_separator",
    "query_nonce",
]

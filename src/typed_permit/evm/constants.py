"""
Token and Domain Configuration

Provides the default EIP-712 domain parameters of the permit token and
environment-aware loading of overrides.  A ``.env`` file in the working
directory is loaded on import.

Environment Variables:
    - PERMIT_DOMAIN_NAME: EIP-712 domain ``name`` (token name)
    - PERMIT_DOMAIN_VERSION: EIP-712 domain ``version``
    - PERMIT_CHAIN_ID: Chain id bound into the domain
    - PERMIT_VERIFYING_CONTRACT: Address bound into the domain
    - PERMIT_TOKEN_SYMBOL: Token symbol
    - PERMIT_TOKEN_DECIMALS: Token decimals
    - PERMIT_RPC_URL: Optional JSON-RPC endpoint of a deployed instance
"""

import os
from decimal import Decimal, InvalidOperation
from typing import Optional

import dotenv
from pydantic import BaseModel, Field, ValidationError

from .standards import EIP712Domain
from .hashing import normalize_address
from ..engine.exceptions import ConfigurationError, MalformedArgumentsError

dotenv.load_dotenv()

DEFAULT_DOMAIN_NAME: str = "EIP712 Test Token"
DEFAULT_DOMAIN_VERSION: str = "1"
DEFAULT_CHAIN_ID: int = 11155111  # Sepolia
DEFAULT_TOKEN_SYMBOL: str = "E712"
DEFAULT_TOKEN_DECIMALS: int = 18

#: Placeholder verifying contract used until a real deployment address is configured.
DEFAULT_VERIFYING_CONTRACT: str = "0x0000000000000000000000000000000000000001"


class TokenConfig(BaseModel):
    """Permit token configuration."""
    name: str = Field(default=DEFAULT_DOMAIN_NAME, description="EIP-712 domain name / token name")
    version: str = Field(default=DEFAULT_DOMAIN_VERSION, description="EIP-712 domain version")
    chain_id: int = Field(default=DEFAULT_CHAIN_ID, ge=1, description="Chain id bound into the domain")
    verifying_contract: str = Field(default=DEFAULT_VERIFYING_CONTRACT, description="Address bound into the domain")
    symbol: str = Field(default=DEFAULT_TOKEN_SYMBOL, description="Token symbol")
    decimals: int = Field(default=DEFAULT_TOKEN_DECIMALS, ge=0, le=255, description="Token decimals")
    rpc_url: Optional[str] = Field(default=None, description="JSON-RPC endpoint of a deployed instance")

    def domain(self) -> EIP712Domain:
        """Return the immutable ``EIP712Domain`` described by this config."""
        return EIP712Domain(
            name=self.name,
            version=self.version,
            chainId=self.chain_id,
            verifyingContract=self.verifying_contract,
        )


def load_token_config(**overrides) -> TokenConfig:
    """
    Build a ``TokenConfig`` from the environment.

    Keyword ``overrides`` take precedence over environment variables, which
    take precedence over the module defaults.

    Raises:
        ConfigurationError: If a value is missing its expected type or range,
            or the verifying contract is not a valid address.

    Example:
        # In your .env file or environment setup:
        # export PERMIT_CHAIN_ID=1
        # export PERMIT_VERIFYING_CONTRACT=0x...

        config = load_token_config()
        token = PermitToken(domain=config.domain())
    """
    env_values = {
        "name": os.getenv("PERMIT_DOMAIN_NAME"),
        "version": os.getenv("PERMIT_DOMAIN_VERSION"),
        "chain_id": os.getenv("PERMIT_CHAIN_ID"),
        "verifying_contract": os.getenv("PERMIT_VERIFYING_CONTRACT"),
        "symbol": os.getenv("PERMIT_TOKEN_SYMBOL"),
        "decimals": os.getenv("PERMIT_TOKEN_DECIMALS"),
        "rpc_url": os.getenv("PERMIT_RPC_URL"),
    }
    values = {key: value for key, value in env_values.items() if value is not None}
    values.update(overrides)

    try:
        config = TokenConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid permit token configuration: {e}") from e

    try:
        config.verifying_contract = normalize_address(config.verifying_contract, field_name="verifying_contract")
    except MalformedArgumentsError as e:
        raise ConfigurationError(str(e)) from e

    return config


def amount_to_value(*, amount: float | int | str | Decimal, decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. 1000 tokens). Accepts float/int/str/Decimal.
        decimals: Token decimals (e.g. 18).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() avoids binary-float artefacts (0.1 -> 0.100000000000000005...)
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    scaled = dec_amount * (Decimal(10) ** decimals)

    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: int | str | Decimal, decimals: int) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `Decimal` amount.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if dec_value < 0:
        raise ValueError("value must be non-negative")

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    return dec_value / (Decimal(10) ** decimals)

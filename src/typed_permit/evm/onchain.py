"""
On-Chain Consistency Check

Read-only helpers comparing a deployed permit token with the local engine.
A relayer runs this once before trusting signatures built against its local
domain: if the deployed separator or type hashes differ, every signature the
local engine accepts would be refused on chain.

Nothing here is on the authorization path; ``PermitToken`` never performs
I/O.

Dependencies:
    - web3.py: For blockchain RPC interaction
"""

import logging
from typing import Any, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field
from web3 import AsyncWeb3

from .PERMIT_TOKEN_ABI import get_eip712_views_abi, get_nonce_abi
from .hashing import normalize_address
from ..engine.exceptions import BlockchainInteractionError, ConfigurationError

if TYPE_CHECKING:
    from ..token.permit_token import PermitToken

logger = logging.getLogger(__name__)

#: Default RPC request timeout in seconds.
DEFAULT_REQUEST_TIMEOUT: int = 30


def get_web3_instance(rpc_url: Optional[str], request_timeout: int = DEFAULT_REQUEST_TIMEOUT) -> AsyncWeb3:
    """
    Create an ``AsyncWeb3`` instance for ``rpc_url``.

    Raises:
        ConfigurationError: If no RPC URL is configured.
    """
    if not rpc_url:
        raise ConfigurationError("No RPC URL configured; set PERMIT_RPC_URL")
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
        rpc_url,
        request_kwargs={"timeout": request_timeout}
    ))


async def _call(w3: AsyncWeb3, contract_address: str, abi, method: str, *args: Any) -> Any:
    address = normalize_address(contract_address, field_name="contract")
    try:
        contract = w3.eth.contract(address=address, abi=abi)
        return await getattr(contract.functions, method)(*args).call()
    except Exception as e:
        logger.warning("RPC call %s on %s failed: %s", method, address, e)
        raise BlockchainInteractionError(
            f"Failed to call {method} on {address}: {e}",
            rpc_method=method,
            reason=str(e),
        ) from e


async def query_domain_separator(w3: AsyncWeb3, contract_address: str) -> bytes:
    """Read ``getDomainSeparator()`` from a deployed token."""
    return bytes(await _call(w3, contract_address, get_eip712_views_abi(), "getDomainSeparator"))


async def query_permit_type_hash(w3: AsyncWeb3, contract_address: str) -> bytes:
    """Read ``getPermitTypeHash()`` from a deployed token."""
    return bytes(await _call(w3, contract_address, get_eip712_views_abi(), "getPermitTypeHash"))


async def query_transfer_type_hash(w3: AsyncWeb3, contract_address: str) -> bytes:
    """Read ``getTransferTypeHash()`` from a deployed token."""
    return bytes(await _call(w3, contract_address, get_eip712_views_abi(), "getTransferTypeHash"))


async def query_nonce(w3: AsyncWeb3, contract_address: str, account: str) -> int:
    """
    Read the permit nonce of ``account`` from a deployed token.

    Use this value when signing an authorization that will be submitted on
    chain rather than to a local ``PermitToken``.
    """
    account = normalize_address(account, field_name="account")
    return int(await _call(w3, contract_address, get_nonce_abi(), "getNonce", account))


class DeploymentCheck(BaseModel):
    """
    Outcome of ``check_deployment``.

    Attributes:
        contract: Checksum address of the deployed token.
        local_domain_separator / remote_domain_separator: 0x-prefixed hashes.
        permit_type_hash_matches / transfer_type_hash_matches: Type hash comparisons.
    """
    contract: str = Field(..., description="Deployed token address")
    local_domain_separator: str = Field(..., description="Separator computed locally")
    remote_domain_separator: str = Field(..., description="Separator read from the deployment")
    permit_type_hash_matches: bool = Field(..., description="Permit type hash equality")
    transfer_type_hash_matches: bool = Field(..., description="Transfer type hash equality")

    @property
    def domain_separator_matches(self) -> bool:
        return self.local_domain_separator.lower() == self.remote_domain_separator.lower()

    @property
    def is_consistent(self) -> bool:
        return self.domain_separator_matches and self.permit_type_hash_matches and self.transfer_type_hash_matches


async def check_deployment(w3: AsyncWeb3, contract_address: str, token: "PermitToken") -> DeploymentCheck:
    """
    Compare a deployed token's EIP-712 views with ``token``.

    Args:
        w3: Configured ``AsyncWeb3`` instance for the deployment's chain.
        contract_address: Address of the deployed token.
        token: Local ``PermitToken`` whose domain should match the deployment.

    Returns:
        ``DeploymentCheck``; ``is_consistent`` is True only when the domain
        separator and both type hashes match.

    Raises:
        BlockchainInteractionError: If any RPC call fails.
    """
    remote_separator = await query_domain_separator(w3, contract_address)
    remote_permit = await query_permit_type_hash(w3, contract_address)
    remote_transfer = await query_transfer_type_hash(w3, contract_address)

    check = DeploymentCheck(
        contract=normalize_address(contract_address, field_name="contract"),
        local_domain_separator="0x" + token.get_domain_separator().hex(),
        remote_domain_separator="0x" + remote_separator.hex(),
        permit_type_hash_matches=remote_permit == token.get_permit_type_hash(),
        transfer_type_hash_matches=remote_transfer == token.get_transfer_type_hash(),
    )
    if not check.is_consistent:
        logger.warning("Deployment %s does not match the local domain", check.contract)
    return check

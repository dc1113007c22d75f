"""
Permit Token Smart Contract ABI Module

Simplified ABI definitions for the read-only EIP-712 views of a deployed
permit token.  Used by ``typed_permit.evm.onchain`` to compare a deployment
with the local engine.

Usage:
    from PERMIT_TOKEN_ABI import (
        get_eip712_views_abi,
        get_nonce_abi,
    )

    # Read domain separator and type hashes
    views_abi = get_eip712_views_abi()

    # Read an account's permit nonce
    nonce_abi = get_nonce_abi()
"""

from typing import Dict, Any, List


def _bytes32_view(name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
    }


def get_eip712_views_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for the domain separator and type hash getters.

    Returns:
        List[Dict[str, Any]]: ABI for `getDomainSeparator`, `getPermitTypeHash`
        and `getTransferTypeHash`.

    Example:
        abi = get_eip712_views_abi()
        contract = web3.eth.contract(address=token_address, abi=abi)
        separator = await contract.functions.getDomainSeparator().call()
    """
    return [
        _bytes32_view("getDomainSeparator"),
        _bytes32_view("getPermitTypeHash"),
        _bytes32_view("getTransferTypeHash"),
    ]


def get_nonce_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for `getNonce(owner)`.

    Returns:
        List[Dict[str, Any]]: ABI for the `getNonce` function.
    """
    return [
        {
            "name": "getNonce",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "owner", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]

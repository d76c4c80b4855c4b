"""
Read-only ERC721 contract calls over JSON-RPC.
"""

from typing import Optional

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

# Minimal ERC721 metadata ABI
ERC721_ABI = [
    {
        "name": "tokenURI",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "name": "name",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "name": "symbol",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
]


class ChainReadError(Exception):
    """Contract call failed (revert, bad output, or RPC transport error)."""
    def __init__(self, message: str, contract_address: Optional[str] = None):
        super().__init__(message)
        self.contract_address = contract_address


def validate_address(address: str) -> str:
    """
    Check that address is a 20-byte hex address.

    Args:
        address: Contract address, lowercase or EIP-55 checksummed

    Returns:
        Checksummed address

    Raises:
        ValueError: If the address is malformed or has a bad checksum
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid contract address: {address!r}")
    return Web3.to_checksum_address(address)


class ChainReader:
    """
    ERC721 reader bound to a single RPC endpoint.
    """

    def __init__(self, rpc_url: str, timeout: float = 10.0):
        """
        Initialize chain reader.

        Args:
            rpc_url: JSON-RPC endpoint URL
            timeout: HTTP timeout for each RPC request, in seconds
        """
        self.rpc_url = rpc_url
        self.w3 = AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)})
        )

    async def close(self):
        """Close the provider's HTTP session."""
        await self.w3.provider.disconnect()

    def _contract(self, contract_address: str):
        return self.w3.eth.contract(address=validate_address(contract_address), abi=ERC721_ABI)

    async def _call(self, contract_address: str, function_name: str, *args) -> str:
        contract = self._contract(contract_address)
        try:
            return await getattr(contract.functions, function_name)(*args).call()
        except Exception as e:
            raise ChainReadError(
                f"{function_name}() call failed: {e}",
                contract_address=contract_address
            ) from e

    async def token_uri(self, contract_address: str, token_id: int) -> str:
        """
        Get the metadata URI of a token.

        Args:
            contract_address: Token contract address
            token_id: Token id

        Returns:
            URI reported by the contract

        Raises:
            ValueError: On malformed address
            ChainReadError: If the call reverts or the RPC request fails
        """
        return await self._call(contract_address, "tokenURI", token_id)

    async def name(self, contract_address: str) -> str:
        """Get the collection name."""
        return await self._call(contract_address, "name")

    async def symbol(self, contract_address: str) -> str:
        """Get the collection symbol."""
        return await self._call(contract_address, "symbol")

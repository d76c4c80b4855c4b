"""
NFT metadata resolution with caching and graceful fallbacks.

A lookup goes contract tokenURI -> URI normalization -> remote JSON
document -> image normalization. Any failure along the way produces a
placeholder document instead of an error, and that placeholder is cached
like a real result.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union, Dict, Any, Protocol

from nftmeta.cache import MetadataCache
from nftmeta.chain_reader import validate_address
from nftmeta.ipfs import DEFAULT_GATEWAY, normalize_uri
from nftmeta.models import NFTMetadata

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
MAX_TOKEN_ID = 2 ** 256 - 1

TOKEN_URI_PLACEHOLDER = "https://via.placeholder.com/400x400?text=NFT+Image+Not+Found"
METADATA_PLACEHOLDER = "https://via.placeholder.com/400x400?text=Metadata+Unavailable"


class TokenURIReader(Protocol):
    async def token_uri(self, contract_address: str, token_id: int) -> str:
        ...


class JSONFetcher(Protocol):
    async def fetch_json(self, url: str) -> Any:
        ...


class FallbackReason(str, Enum):
    """Why a placeholder document was returned."""
    TOKEN_URI_UNAVAILABLE = "token_uri_unavailable"
    METADATA_UNAVAILABLE = "metadata_unavailable"


@dataclass(frozen=True)
class Resolved:
    """Metadata fetched from the token's metadata URI."""
    metadata: NFTMetadata


@dataclass(frozen=True)
class Fallback:
    """Placeholder metadata produced after a failed lookup."""
    metadata: NFTMetadata
    reason: FallbackReason


ResolutionResult = Union[Resolved, Fallback]


def cache_key(contract_address: str, token_id: int) -> str:
    """Cache key for a token; address case does not matter."""
    return f"metadata-{contract_address.lower()}-{token_id}"


def token_uri_fallback(token_id: int) -> Fallback:
    return Fallback(
        metadata=NFTMetadata(
            name=f"NFT #{token_id}",
            description="No description available",
            image=TOKEN_URI_PLACEHOLDER,
        ),
        reason=FallbackReason.TOKEN_URI_UNAVAILABLE,
    )


def metadata_fallback(token_id: int) -> Fallback:
    return Fallback(
        metadata=NFTMetadata(
            name=f"NFT #{token_id}",
            description="Metadata not available",
            image=METADATA_PLACEHOLDER,
        ),
        reason=FallbackReason.METADATA_UNAVAILABLE,
    )


def to_cache_value(result: ResolutionResult) -> Dict[str, Any]:
    value = {"metadata": result.metadata.to_dict(), "fallback": None}
    if isinstance(result, Fallback):
        value["fallback"] = result.reason.value
    return value


def from_cache_value(value: Dict[str, Any]) -> ResolutionResult:
    metadata = NFTMetadata.model_validate(value["metadata"])
    if value.get("fallback"):
        return Fallback(metadata=metadata, reason=FallbackReason(value["fallback"]))
    return Resolved(metadata=metadata)


def parse_metadata(document: Any, gateway: str = DEFAULT_GATEWAY) -> NFTMetadata:
    """
    Build metadata from a decoded JSON document.

    An ipfs:// image is rewritten to the gateway form; every other field
    is kept as it was.

    Raises:
        ValueError: If the document is not a JSON object
    """
    if not isinstance(document, dict):
        raise ValueError(f"Metadata document must be a JSON object, got {type(document).__name__}")

    document = dict(document)
    image = document.get("image")
    if isinstance(image, str):
        document["image"] = normalize_uri(image, gateway)

    return NFTMetadata.model_validate(document)


def validate_token_id(token_id: int) -> int:
    if isinstance(token_id, bool) or not isinstance(token_id, int):
        raise ValueError(f"Invalid token id: {token_id!r}")
    if token_id < 0 or token_id > MAX_TOKEN_ID:
        raise ValueError(f"Token id out of range: {token_id}")
    return token_id


class MetadataResolver:
    """
    Resolves and caches metadata for (contract, token id) pairs.

    Concurrent lookups of the same uncached token share one pending
    resolution. The result is written to the cache before that resolution
    completes, so later callers hit the cache.
    """

    def __init__(
        self,
        chain_reader: TokenURIReader,
        fetcher: JSONFetcher,
        cache: MetadataCache,
        ipfs_gateway: str = DEFAULT_GATEWAY,
        timeout: float = DEFAULT_TIMEOUT,
        fallback_ttl: Optional[float] = None,
    ):
        """
        Initialize resolver.

        Args:
            chain_reader: Provides token_uri(contract, token_id)
            fetcher: Provides fetch_json(url)
            cache: Result cache
            ipfs_gateway: Gateway base used for ipfs:// URIs
            timeout: Limit in seconds for each collaborator call
            fallback_ttl: TTL for placeholder results, None to use the cache default
        """
        self.chain_reader = chain_reader
        self.fetcher = fetcher
        self.cache = cache
        self.ipfs_gateway = ipfs_gateway
        self.timeout = timeout
        self.fallback_ttl = fallback_ttl
        self._in_flight: Dict[str, asyncio.Task] = {}

    @property
    def in_flight(self) -> int:
        """Number of resolutions currently running."""
        return len(self._in_flight)

    async def resolve(self, contract_address: str, token_id: int) -> NFTMetadata:
        """
        Get metadata for a token.

        Lookup failures yield placeholder metadata, never an exception.

        Raises:
            ValueError: On a malformed contract address or token id
        """
        result = await self.resolve_result(contract_address, token_id)
        return result.metadata

    async def resolve_result(self, contract_address: str, token_id: int) -> ResolutionResult:
        """
        Same as resolve(), keeping whether the result is a fallback and why.
        """
        validate_address(contract_address)
        validate_token_id(token_id)

        key = cache_key(contract_address, token_id)
        cached = self._cached_result(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._resolve_and_store(key, contract_address, token_id))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("Joining in-flight resolution for %s", key)

        # Shielded so a cancelled caller does not cancel work others await
        return await asyncio.shield(task)

    def _cached_result(self, key: str) -> Optional[ResolutionResult]:
        """Read a cached result; an unreadable cache counts as a miss."""
        try:
            cached = self.cache.get(key)
            if cached is None:
                return None
            return from_cache_value(cached)
        except Exception:
            logger.exception("Failed to read cached metadata for %s", key)
            return None

    def _forget(self, key: str, task: asyncio.Task):
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _resolve_and_store(self, key: str, contract_address: str, token_id: int) -> ResolutionResult:
        result = await self._produce(contract_address, token_id)

        ttl = self.fallback_ttl if isinstance(result, Fallback) else None
        try:
            self.cache.set(key, to_cache_value(result), ttl=ttl)
        except Exception:
            logger.exception("Failed to cache metadata for %s", key)

        return result

    async def _produce(self, contract_address: str, token_id: int) -> ResolutionResult:
        try:
            token_uri = await asyncio.wait_for(
                self.chain_reader.token_uri(contract_address, token_id),
                timeout=self.timeout
            )
            if not isinstance(token_uri, str):
                raise ValueError(f"tokenURI returned {type(token_uri).__name__}")
        except asyncio.TimeoutError:
            logger.warning("tokenURI call timed out for %s #%s", contract_address, token_id)
            return token_uri_fallback(token_id)
        except Exception as e:
            logger.warning("Error fetching tokenURI for %s #%s: %s", contract_address, token_id, e)
            return token_uri_fallback(token_id)

        metadata_url = normalize_uri(token_uri, self.ipfs_gateway)

        try:
            document = await asyncio.wait_for(
                self.fetcher.fetch_json(metadata_url),
                timeout=self.timeout
            )
            metadata = parse_metadata(document, self.ipfs_gateway)
        except asyncio.TimeoutError:
            logger.warning("Metadata fetch timed out: %s", metadata_url)
            return metadata_fallback(token_id)
        except Exception as e:
            logger.warning("Error fetching metadata from %s: %s", metadata_url, e)
            return metadata_fallback(token_id)

        return Resolved(metadata=metadata)

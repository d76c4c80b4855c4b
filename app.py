import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, APIRouter, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nftmeta.cache import MemoryCache, MetadataCache
from nftmeta.chain_reader import ChainReader, validate_address
from nftmeta.config import Settings, load_settings
from nftmeta.listings import MockListingStore
from nftmeta.metadata_resolver import MetadataResolver
from nftmeta.models import (
    CollectionInfo, ErrorResponse, HealthStatus, Listing, NFTMetadata,
    SearchCriteria, SortField, SortOrder
)
from nftmeta.remote_fetcher import RemoteFetcher

logger = logging.getLogger("nftmeta.app")

router = APIRouter()


def build_cache(settings: Settings) -> MetadataCache:
    """Create the cache backend selected by CACHE_BACKEND."""
    if settings.cache_backend == "sql":
        from nftmeta.sql_cache import SqlCache
        return SqlCache(settings.database_url, settings.cache_ttl, settings.cache_ttl_jitter)

    return MemoryCache(
        settings.cache_ttl,
        ttl_jitter=settings.cache_ttl_jitter,
        max_entries=settings.cache_max_entries,
    )


def _error(status_code: int, error: str, details: str) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_resolver(request: Request) -> MetadataResolver:
    return request.app.state.resolver


def get_chain_reader(request: Request) -> ChainReader:
    return request.app.state.chain_reader


def get_listing_store(request: Request) -> MockListingStore:
    return request.app.state.listings


def parse_token_id(raw: str) -> int:
    """
    Parse a token id path segment.

    Raises:
        ValueError: If raw is not a non-negative decimal integer
    """
    if not raw.isdigit():
        raise ValueError(f"Invalid token id: {raw!r}")
    return int(raw)


@router.get("/api/nft/metadata/{contract_address}/{token_id}")
async def get_nft_metadata(
    contract_address: str,
    token_id: str,
    resolver: MetadataResolver = Depends(get_resolver)
):
    """
    Get metadata for a token.

    Lookup failures come back as placeholder metadata with status 200;
    only unexpected errors, such as a malformed address, return 500.
    """
    try:
        metadata = await resolver.resolve(contract_address, parse_token_id(token_id))
        return JSONResponse(content=metadata.to_dict())
    except Exception as e:
        logger.error("Error in metadata endpoint: %s", e)
        return _error(500, "Failed to fetch NFT metadata", str(e))


async def _listing_metadata(resolver: MetadataResolver, listing: Listing) -> Optional[NFTMetadata]:
    try:
        return await resolver.resolve(listing.nft_contract, listing.token_id)
    except ValueError as e:
        logger.error("Error fetching metadata for listing %s: %s", listing.listing_id, e)
        return None


def _listing_json(listing: Listing, metadata: Optional[NFTMetadata]) -> dict:
    data = listing.model_dump(mode="json", by_alias=True)
    if metadata is not None:
        data["metadata"] = metadata.to_dict()
    return data


@router.get("/api/nft/search")
async def search_nfts(
    price_min: Optional[float] = Query(None, alias="priceMin"),
    price_max: Optional[float] = Query(None, alias="priceMax"),
    collection: Optional[str] = Query(None),
    seller: Optional[str] = Query(None),
    token_id: Optional[int] = Query(None, alias="tokenId"),
    sort_by: str = Query("createdAt", alias="sortBy", description="price or createdAt"),
    sort_order: str = Query("desc", alias="sortOrder", description="asc or desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    resolver: MetadataResolver = Depends(get_resolver),
    store: MockListingStore = Depends(get_listing_store)
):
    """
    Search listings and attach metadata to each listing on the page.
    """
    try:
        criteria = SearchCriteria(
            price_min=price_min,
            price_max=price_max,
            collection=collection,
            seller=seller,
            token_id=token_id,
            sort_by=SortField.parse(sort_by),
            sort_order=SortOrder.parse(sort_order),
            page=page,
            limit=limit,
        )
        result = store.search(criteria)

        metadata = await asyncio.gather(
            *(_listing_metadata(resolver, listing) for listing in result.listings)
        )

        return {
            "listings": [
                _listing_json(listing, meta)
                for listing, meta in zip(result.listings, metadata)
            ],
            "pagination": result.pagination.model_dump(by_alias=True),
        }
    except Exception as e:
        logger.error("Error in search endpoint: %s", e)
        return _error(500, "Search failed", str(e))


@router.get("/api/collection/{contract_address}")
async def get_collection(
    contract_address: str,
    chain_reader: ChainReader = Depends(get_chain_reader),
    settings: Settings = Depends(get_settings)
):
    """
    Get a collection's name and symbol.
    """
    try:
        validate_address(contract_address)
        name, symbol = await asyncio.wait_for(
            asyncio.gather(
                chain_reader.name(contract_address),
                chain_reader.symbol(contract_address)
            ),
            timeout=settings.request_timeout
        )
        return CollectionInfo(address=contract_address, name=name, symbol=symbol)
    except Exception as e:
        logger.error("Error fetching collection info: %s", e)
        return _error(500, "Failed to fetch collection information", str(e))


@router.get("/api/health")
def health(settings: Settings = Depends(get_settings)) -> HealthStatus:
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return HealthStatus(
        status="OK",
        timestamp=timestamp.replace("+00:00", "Z"),
        network=settings.network_name
    )


async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unmatched paths and unsupported methods both count as unknown endpoints
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"error": "Endpoint not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)}
    )


def create_app(
    settings: Optional[Settings] = None,
    resolver: Optional[MetadataResolver] = None,
    chain_reader: Optional[ChainReader] = None,
    listing_store: Optional[MockListingStore] = None
) -> FastAPI:
    """
    Build the API application.

    Collaborators not passed in are created on startup from settings and
    closed on shutdown.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler - runs on startup and shutdown."""
        owned = []

        reader = chain_reader
        if reader is None:
            reader = ChainReader(settings.rpc_url, timeout=settings.request_timeout)
            owned.append(reader)

        metadata_resolver = resolver
        if metadata_resolver is None:
            fetcher = RemoteFetcher(timeout=settings.request_timeout)
            owned.append(fetcher)
            metadata_resolver = MetadataResolver(
                chain_reader=reader,
                fetcher=fetcher,
                cache=build_cache(settings),
                ipfs_gateway=settings.ipfs_gateway,
                timeout=settings.request_timeout,
                fallback_ttl=settings.fallback_cache_ttl,
            )

        app.state.chain_reader = reader
        app.state.resolver = metadata_resolver
        app.state.listings = listing_store or MockListingStore()

        logger.info("RPC endpoint: %s (%s)", settings.rpc_url, settings.network_name)
        logger.info("Metadata cache: %s, TTL %ss", settings.cache_backend, settings.cache_ttl)

        yield

        for collaborator in owned:
            await collaborator.close()

    app = FastAPI(
        title="nftmeta",
        description="NFT marketplace metadata and listing API",
        version="0.1.0",
        lifespan=lifespan
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.include_router(router)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)

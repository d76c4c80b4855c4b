import asyncio

import pytest

from nftmeta.cache import MemoryCache
from nftmeta.metadata_resolver import MetadataResolver

CONTRACT = "0x8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeChainReader:
    """Returns a fixed tokenURI, or raises `error` when set."""

    def __init__(self, uri="https://example.com/meta.json", error=None, delay=0.0):
        self.uri = uri
        self.error = error
        self.delay = delay
        self.calls = []

    async def token_uri(self, contract_address, token_id):
        self.calls.append((contract_address, token_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.uri

    async def name(self, contract_address):
        if self.error is not None:
            raise self.error
        return "Test Collection"

    async def symbol(self, contract_address):
        if self.error is not None:
            raise self.error
        return "TEST"


class FakeFetcher:
    """Returns a fixed document, or raises `error` when set."""

    def __init__(self, document=None, error=None, delay=0.0):
        self.document = document if document is not None else {
            "name": "Test NFT",
            "description": "A token",
            "image": "https://example.com/1.png",
        }
        self.error = error
        self.delay = delay
        self.urls = []

    async def fetch_json(self, url):
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.document


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain_reader():
    return FakeChainReader()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def cache(clock):
    return MemoryCache(300, clock=clock)


@pytest.fixture
def resolver(chain_reader, fetcher, cache):
    return MetadataResolver(chain_reader, fetcher, cache, timeout=1.0)

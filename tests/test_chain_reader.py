import pytest

from nftmeta.chain_reader import ChainReadError, ChainReader, validate_address
from nftmeta.ipfs import normalize_uri

from conftest import CONTRACT


def test_validate_address_checksums():
    checksummed = validate_address(CONTRACT)
    assert checksummed.lower() == CONTRACT
    assert validate_address(checksummed) == checksummed


@pytest.mark.parametrize("address", ["", "0x1234", "8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8", None, 42])
def test_validate_address_rejects_malformed(address):
    with pytest.raises(ValueError):
        validate_address(address)


@pytest.mark.asyncio
async def test_token_uri_rejects_malformed_address_before_rpc():
    reader = ChainReader("http://127.0.0.1:1")
    with pytest.raises(ValueError):
        await reader.token_uri("0xnope", 1)


class FakeContractCall:
    def __init__(self, outcome):
        self.outcome = outcome

    async def call(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class FakeContractFunctions:
    """Stands in for contract.functions; records each call's name and args."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    def __getattr__(self, function_name):
        def build(*args):
            self.calls.append((function_name, args))
            return FakeContractCall(self.outcomes[function_name])
        return build


class FakeContract:
    def __init__(self, **outcomes):
        self.functions = FakeContractFunctions(outcomes)


def _reader_with(monkeypatch, contract):
    reader = ChainReader("http://127.0.0.1:1")
    monkeypatch.setattr(reader, "_contract", lambda address: contract)
    return reader


@pytest.mark.asyncio
async def test_reads_token_uri_name_and_symbol(monkeypatch):
    contract = FakeContract(tokenURI="ipfs://Qm1", name="Punks", symbol="PNK")
    reader = _reader_with(monkeypatch, contract)

    assert await reader.token_uri(CONTRACT, 7) == "ipfs://Qm1"
    assert await reader.name(CONTRACT) == "Punks"
    assert await reader.symbol(CONTRACT) == "PNK"
    assert contract.functions.calls == [("tokenURI", (7,)), ("name", ()), ("symbol", ())]


@pytest.mark.asyncio
async def test_contract_errors_wrapped_in_chain_read_error(monkeypatch):
    revert = RuntimeError("execution reverted: nonexistent token")
    reader = _reader_with(monkeypatch, FakeContract(tokenURI=revert, name=ConnectionError("rpc down")))

    with pytest.raises(ChainReadError) as exc_info:
        await reader.token_uri(CONTRACT, 99)
    assert exc_info.value.contract_address == CONTRACT
    assert exc_info.value.__cause__ is revert
    assert "tokenURI() call failed" in str(exc_info.value)

    with pytest.raises(ChainReadError):
        await reader.name(CONTRACT)


@pytest.mark.parametrize("uri,expected", [
    ("ipfs://bafyXYZ", "https://ipfs.io/ipfs/bafyXYZ"),
    ("ipfs://QmABC/1.json", "https://ipfs.io/ipfs/QmABC/1.json"),
    ("https://example.com/meta.json", "https://example.com/meta.json"),
    ("http://example.com/meta.json", "http://example.com/meta.json"),
    ("data:application/json;base64,e30=", "data:application/json;base64,e30="),
])
def test_normalize_uri(uri, expected):
    assert normalize_uri(uri) == expected


def test_normalize_uri_custom_gateway_without_slash():
    assert normalize_uri("ipfs://Qm1", "https://gw.example/ipfs") == "https://gw.example/ipfs/Qm1"

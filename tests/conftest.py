"""Shared fakes for the roasted test suite."""

from decimal import Decimal

import pytest

from core.chain import ChainCommitter, PendingTx, Receipt
from core.errors import ConfirmationError, ExternalServiceError, ReadError, SubmissionError
from core.price_quote import PriceQuote

AUTHOR = "0x" + "b" * 40
SUBJECT = "0x" + "a" * 40
OTHER = "0x" + "c" * 40


class FakeAnchor:
    def __init__(self, events=None, cids=("cid123",), fail=False):
        self.events = events if events is not None else []
        self._cids = list(cids)
        self.fail = fail
        self.documents = []
        self.orphans = []

    async def store(self, document):
        self.events.append("store")
        if self.fail:
            raise ExternalServiceError("content_anchor", "pinning failed (503)", 503)
        self.documents.append(document)
        return self._cids.pop(0) if len(self._cids) > 1 else self._cids[0]

    def note_orphan(self, cid, reason=None):
        self.orphans.append(cid)


class FakeCommitter(ChainCommitter):
    """ChainCommitter with the RPC edge replaced; commit() and the write helpers stay real."""

    def __init__(self, events=None, connected=True, signer=AUTHOR, reads=None,
                 submit_error=None, confirm_error=None, token_id="0x" + "01" * 32):
        super().__init__()
        self.events = events if events is not None else []
        self.connected = connected
        self.signer = signer
        self.reads = reads if reads is not None else {}
        self.submit_error = submit_error
        self.confirm_error = confirm_error
        self.token_id = token_id
        self.submissions = []
        self.read_calls = []

    @property
    def is_connected(self):
        return self.connected

    @property
    def signer_address(self):
        return self.signer

    async def submit(self, method, args, value=0):
        self.events.append(f"submit:{method}")
        if self.submit_error:
            raise SubmissionError(self.submit_error)
        self.submissions.append((method, list(args), value))
        return PendingTx(tx_hash="0xhash", method=method)

    async def await_confirmation(self, handle):
        self.events.append("confirm")
        if self.confirm_error:
            raise ConfirmationError(self.confirm_error, handle.tx_hash)
        return Receipt(tx_hash=handle.tx_hash, method=handle.method, block_number=1, token_id=self.token_id)

    async def read_only_call(self, method, args=()):
        self.read_calls.append((method, list(args)))
        value = self.reads.get(method, 0)
        if isinstance(value, Exception):
            raise value
        return value


class FakeGenerator:
    def __init__(self, text="your hat has its own gravity", fail=False):
        self.text = text
        self.fail = fail
        self.calls = []

    async def generate(self, context, subject_handle=None):
        self.calls.append((context, subject_handle))
        if self.fail:
            raise ExternalServiceError("roast_ai", "Failed to generate roast")
        return self.text

    def get_status(self):
        return {"configured": True, "calls": len(self.calls)}


class FakeQuotes:
    def __init__(self, price="2.5", fail=False):
        self.price = Decimal(price)
        self.fail = fail

    async def fetch(self):
        if self.fail:
            raise ExternalServiceError("price_quote", "HTTP error! status: 500", 500)
        return PriceQuote(price=self.price, symbol="LYX", timestamp="2024-01-01T00:00:00Z")


def token_row(token_id, roaster=None, roastee=None, text="nice hat", created=0):
    attributes = []
    if roaster:
        attributes.append({"key": "Roaster", "value": roaster, "attributeType": "string"})
    if roastee:
        attributes.append({"key": "Roastee Address", "value": roastee, "attributeType": "string"})
    attributes.append({"key": "Roast", "value": text, "attributeType": "string"})
    return {
        "id": f"0x2a01:{token_id}",
        "tokenId": token_id,
        "name": "Roast NFT",
        "description": text,
        "attributes": attributes,
        "images": [{"url": "ipfs://img"}],
        "createdTimestamp": str(created),
    }


class FakeIndexer:
    """GraphQL source that answers Token and Profile queries from fixed data."""

    def __init__(self, tokens=(), profiles=(), fail_tokens=False, fail_profiles=False):
        self.tokens = list(tokens)
        self.profiles = list(profiles)
        self.fail_tokens = fail_tokens
        self.fail_profiles = fail_profiles
        self.token_calls = []
        self.profile_calls = []

    async def query(self, query, variables):
        if "Profile(" in query:
            self.profile_calls.append(variables)
            if self.fail_profiles:
                raise ExternalServiceError("indexer", "HTTP 503: unavailable", 503)
            wanted = set(variables["addresses"])
            return {"Profile": [p for p in self.profiles if p["id"].lower() in wanted]}

        self.token_calls.append(variables)
        if self.fail_tokens:
            raise ExternalServiceError("indexer", "HTTP 503: unavailable", 503)
        start = variables["offset"]
        return {"Token": self.tokens[start:start + variables["limit"]]}


class FakeResponse:
    def __init__(self, status=200, payload=None, body=b""):
        self.status = status
        self._payload = payload
        self._body = body

    async def json(self):
        return self._payload

    async def text(self):
        return self._body.decode() if self._body else str(self._payload)

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; records every request."""

    requests = []
    response = FakeResponse()
    error = None

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def _request(self, method, url, **kwargs):
        FakeSession.requests.append((method, url, kwargs))
        if FakeSession.error is not None:
            raise FakeSession.error
        return FakeSession.response

    def post(self, url, **kwargs):
        return self._request("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._request("GET", url, **kwargs)


@pytest.fixture
def fake_http(monkeypatch):
    """Patch aiohttp.ClientSession; set FakeSession.response / .error per test."""
    import aiohttp

    FakeSession.requests = []
    FakeSession.response = FakeResponse()
    FakeSession.error = None
    monkeypatch.setattr(aiohttp, "ClientSession", FakeSession)
    return FakeSession


@pytest.fixture
def read_error():
    return ReadError("roastPrices: connection refused")

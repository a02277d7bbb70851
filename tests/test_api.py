"""API tests: FastAPI TestClient over create_app() wired with fakes."""

import pytest
from fastapi.testclient import TestClient

from conftest import AUTHOR, OTHER, FakeCommitter, FakeGenerator, FakeIndexer, FakeQuotes, token_row
from api.server import create_app
from core.feed import FeedResolver
from core.grid_owner import GridOwnerAccount
from core.identity_link import IdentityLink
from core.link_token import LinkSignal, LinkTokenIssuer


@pytest.fixture
def wired(tmp_path):
    identity = IdentityLink(tmp_path)
    committer = FakeCommitter(signer=AUTHOR, reads={"userBalances": 10 ** 18, "roastPrices": 10 ** 17})
    quotes = FakeQuotes("2")
    indexer = FakeIndexer(
        tokens=[token_row("0x01", roaster=AUTHOR, roastee=OTHER)],
        profiles=[{"id": AUTHOR, "name": "bob"}],
    )
    parts = dict(
        identity=identity,
        committer=committer,
        generator=FakeGenerator(text="that hat has wifi"),
        quotes=quotes,
        feed=FeedResolver(indexer),
        grid_owner=GridOwnerAccount(committer, quotes, identity=identity),
        link_issuer=LinkTokenIssuer("test-secret"),
        link_signal=LinkSignal(),
    )
    app = create_app(**parts)
    return TestClient(app), parts, indexer


def test_user_lookup(wired):
    client, parts, _ = wired
    r = client.get("/user", params={"address": AUTHOR})
    assert r.status_code == 200
    assert r.json() == {"success": True, "exists": False, "data": None, "isRoastable": False}

    r = client.post("/save-identity", json={
        "walletAddress": AUTHOR.upper().replace("0X", "0x"),
        "externalId": "42",
        "externalUsername": "bob",
    })
    assert r.status_code == 200
    assert r.json()["success"] is True

    body = client.get("/user", params={"address": AUTHOR}).json()
    assert body["exists"] is True
    assert body["isRoastable"] is True
    assert body["data"]["externalHandle"] == "bob"
    assert body["data"]["walletAddress"] == AUTHOR


def test_user_rejects_bad_address(wired):
    client, _, _ = wired
    r = client.get("/user", params={"address": "0x123"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Invalid wallet address format"}

    r = client.get("/user")
    assert r.status_code == 400
    assert r.json()["error"] == "Wallet address is required"


def test_save_identity_validation(wired):
    client, _, _ = wired
    r = client.post("/save-identity", json={"walletAddress": AUTHOR, "externalId": "42"})
    assert r.status_code == 400
    assert r.json()["error"] == "Missing required fields"

    r = client.post("/save-identity", json={
        "walletAddress": "nope", "externalId": "42", "externalUsername": "bob",
    })
    assert r.status_code == 400


def test_generate_roast(wired):
    client, parts, _ = wired
    r = client.post("/generate-roast", json={"context": "hat", "subjectHandle": "alice"})
    assert r.status_code == 200
    assert r.json() == {"roast": "that hat has wifi"}

    r = client.post("/generate-roast", json={"subjectHandle": "alice"})
    assert r.status_code == 400
    assert r.json() == {"error": "Context is required"}

    parts["generator"].fail = True
    r = client.post("/generate-roast", json={"context": "hat"})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to generate roast"}


def test_price_quote(wired):
    client, parts, _ = wired
    assert client.get("/price-quote").json()["price"] == 2.0
    parts["quotes"].fail = True
    assert client.get("/price-quote").status_code == 500


def test_feed(wired):
    client, _, indexer = wired
    body = client.get("/feed", params={"limit": 10, "offset": 0}).json()
    assert body["hasMore"] is False
    assert body["nextOffset"] == 10
    assert body["items"][0]["roaster"] == f"bob#{AUTHOR[2:6]}"
    assert body["items"][0]["roastee"] is None

    indexer.fail_tokens = True
    r = client.get("/feed")
    assert r.status_code == 502
    assert r.json()["success"] is False


def test_owner_snapshot(wired):
    client, _, _ = wired
    body = client.get("/owner", params={"viewer": AUTHOR, "subject": AUTHOR}).json()
    assert body["isOwner"] is True
    assert body["balanceValue"] == 2.0
    assert body["price"] == "0.1"

    body = client.get("/owner", params={"viewer": OTHER, "subject": AUTHOR}).json()
    assert body["isOwner"] is False


def test_owner_actions(wired):
    client, parts, _ = wired
    r = client.post("/owner/price", json={"viewer": AUTHOR, "subject": AUTHOR, "price": "0.5"})
    assert r.status_code == 200
    assert parts["committer"].submissions[-1][0] == "setRoastPrice"

    r = client.post("/owner/withdraw", json={"viewer": OTHER, "subject": AUTHOR})
    assert r.status_code == 400

    parts["committer"].submit_error = "insufficient funds"
    r = client.post("/owner/withdraw", json={"viewer": AUTHOR, "subject": AUTHOR})
    assert r.status_code == 502


def test_tip(wired):
    client, parts, _ = wired
    token_id = "0x" + "00" * 31 + "01"
    r = client.post(f"/roasts/{token_id}/tip")
    assert r.status_code == 200
    assert parts["committer"].submissions[-1] == ("tipRoast", [token_id], "0.01")
    assert client.post("/roasts/0x01/tip").status_code == 400


def test_link_round_trip(wired):
    client, parts, _ = wired
    started = client.post("/link/start", json={"walletAddress": AUTHOR}).json()
    assert started["expiresAt"] > 0

    r = client.post("/link/complete", json={
        "token": started["token"], "externalId": "42", "externalUsername": "bob",
    })
    assert r.status_code == 200
    assert r.json()["walletAddress"] == AUTHOR

    # Completion is delivered to a waiter that arrives afterwards
    waited = client.get("/link/wait", params={"address": AUTHOR, "timeout": 0.1}).json()
    assert waited["linked"] is True
    assert waited["data"]["externalUsername"] == "bob"

    # Single use
    r = client.post("/link/complete", json={
        "token": started["token"], "externalId": "42", "externalUsername": "bob",
    })
    assert r.status_code == 400


def test_link_wait_times_out(wired):
    client, _, _ = wired
    body = client.get("/link/wait", params={"address": AUTHOR, "timeout": 0.01}).json()
    assert body == {"linked": False, "data": None}


def test_health(wired):
    client, _, _ = wired
    body = client.get("/health").json()
    assert body["alive"] is True
    assert "chain" in body and "identity" in body


def test_owner_read_failures_surface_as_notices(wired):
    client, parts, _ = wired
    parts["quotes"].fail = True
    body = client.get("/owner", params={"viewer": AUTHOR, "subject": AUTHOR}).json()
    assert body["balanceValue"] == 0.0

    notices = client.get("/notices").json()["notices"]
    failed = [n for n in notices if n["message"] == "Failed to fetch price quote"]
    assert failed and failed[0]["level"] == "error"

    r = client.post(f"/notices/{failed[0]['id']}/dismiss")
    assert r.json() == {"success": True, "dismissed": True}
    remaining = client.get("/notices").json()["notices"]
    assert all(n["id"] != failed[0]["id"] for n in remaining)


def test_feed_uses_configured_page_size(tmp_path):
    indexer = FakeIndexer(tokens=[token_row(f"0x{i:02x}") for i in range(5)])
    committer = FakeCommitter()
    quotes = FakeQuotes()
    app = create_app(
        identity=IdentityLink(tmp_path),
        committer=committer,
        generator=FakeGenerator(),
        quotes=quotes,
        feed=FeedResolver(indexer),
        grid_owner=GridOwnerAccount(committer, quotes),
        link_issuer=LinkTokenIssuer("test-secret"),
        page_size=3,
    )
    body = TestClient(app).get("/feed").json()
    assert len(body["items"]) == 3
    assert body["hasMore"] is True
    assert indexer.token_calls[0]["limit"] == 3

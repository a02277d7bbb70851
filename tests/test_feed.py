import asyncio

import pytest

from conftest import FakeIndexer, FakeResponse, token_row
from core.errors import ExternalServiceError, ValidationError
from core.feed import FeedPager, FeedResolver, IndexerClient

ADDR_A = "0x" + "a1" * 20
ADDR_B = "0x" + "b2" * 20
ADDR_C = "0x" + "c3" * 20


def _rows(n):
    return [token_row(f"0x{i:064x}", roaster=ADDR_A, roastee=ADDR_B, created=1000 - i) for i in range(n)]


def test_join_resolves_known_and_leaves_unknown_absent():
    indexer = FakeIndexer(
        tokens=[token_row("0x01", roaster=ADDR_A.upper().replace("0X", "0x"), roastee=ADDR_B)],
        profiles=[{"id": ADDR_A, "name": "alice"}],
    )
    page = asyncio.run(FeedResolver(indexer).fetch_page(10, 0))

    item = page.items[0]
    assert item.roaster_address == ADDR_A
    assert item.resolved_roaster_handle == f"alice#{ADDR_A[2:6]}"
    assert item.resolved_roastee_handle is None
    assert page.identities_resolved


def test_shared_addresses_are_looked_up_once():
    indexer = FakeIndexer(
        tokens=[
            token_row("0x01", roaster=ADDR_A, roastee=ADDR_B),
            token_row("0x02", roaster=ADDR_A, roastee=ADDR_C),
            token_row("0x03", roaster=ADDR_B, roastee=ADDR_A),
        ],
        profiles=[{"id": ADDR_A, "name": "alice"}, {"id": ADDR_B, "name": "bob"}],
    )
    page = asyncio.run(FeedResolver(indexer).fetch_page(10, 0))

    assert len(indexer.profile_calls) == 1
    requested = indexer.profile_calls[0]["addresses"]
    assert sorted(requested) == sorted({ADDR_A, ADDR_B, ADDR_C})
    assert len(requested) == 3
    assert [i.resolved_roaster_handle for i in page.items] == [
        f"alice#{ADDR_A[2:6]}", f"alice#{ADDR_A[2:6]}", f"bob#{ADDR_B[2:6]}",
    ]


def test_has_more_follows_full_page():
    full = asyncio.run(FeedResolver(FakeIndexer(tokens=_rows(10))).fetch_page(10, 0))
    assert full.has_more
    assert full.next_offset == 10

    partial = asyncio.run(FeedResolver(FakeIndexer(tokens=_rows(4))).fetch_page(10, 0))
    assert not partial.has_more
    assert len(partial.items) == 4


def test_phase_one_query_is_scoped_and_paged():
    indexer = FakeIndexer(tokens=_rows(3))
    asyncio.run(FeedResolver(indexer, "0xABC").fetch_page(5, 20))
    assert indexer.token_calls == [{"collection": "0xabc", "limit": 5, "offset": 20}]


def test_empty_address_set_skips_phase_two():
    indexer = FakeIndexer(tokens=[token_row("0x01")])
    page = asyncio.run(FeedResolver(indexer).fetch_page(10, 0))
    assert indexer.profile_calls == []
    assert page.items[0].resolved_roaster_handle is None


def test_phase_one_failure_fails_the_page():
    indexer = FakeIndexer(fail_tokens=True)
    with pytest.raises(ExternalServiceError):
        asyncio.run(FeedResolver(indexer).fetch_page(10, 0))
    assert indexer.profile_calls == []


def test_phase_two_failure_degrades():
    indexer = FakeIndexer(tokens=_rows(2), fail_profiles=True)
    page = asyncio.run(FeedResolver(indexer).fetch_page(10, 0))
    assert len(page.items) == 2
    assert not page.identities_resolved
    assert all(i.resolved_roaster_handle is None for i in page.items)
    assert page.items[0].description == "nice hat"


def test_invalid_paging_arguments():
    with pytest.raises(ValidationError):
        asyncio.run(FeedResolver(FakeIndexer()).fetch_page(0, 0))
    with pytest.raises(ValidationError):
        asyncio.run(FeedResolver(FakeIndexer()).fetch_page(10, -1))


def test_pager_loads_until_exhausted():
    indexer = FakeIndexer(tokens=_rows(25))
    pager = FeedPager(FeedResolver(indexer), page_size=10)

    async def scenario():
        sizes = []
        for _ in range(4):
            sizes.append(len(await pager.load_more()))
        return sizes

    assert asyncio.run(scenario()) == [10, 10, 5, 0]
    assert len(pager.items) == 25
    assert len(indexer.token_calls) == 3
    assert [c["offset"] for c in indexer.token_calls] == [0, 10, 20]


def test_pager_drops_duplicates_and_serializes():
    rows = _rows(10)
    # A new roast landed: the old tail shifts into the next page
    shifted = [rows[9], token_row("0xfeed", roaster=ADDR_C)]
    indexer = FakeIndexer(tokens=rows + shifted)
    pager = FeedPager(FeedResolver(indexer), page_size=10)

    async def scenario():
        return await asyncio.gather(pager.load_more(), pager.load_more())

    first, second = asyncio.run(scenario())
    assert len(first) == 10
    assert [i.token_id for i in second] == ["0xfeed"]
    assert len({i.id for i in pager.items}) == len(pager.items) == 11
    assert [c["offset"] for c in indexer.token_calls] == [0, 10]


def test_indexer_client_posts_graphql(fake_http):
    fake_http.response = FakeResponse(payload={"data": {"Token": []}})
    data = asyncio.run(IndexerClient("https://indexer.test/graphql").query("query { x }", {"a": 1}))
    assert data == {"Token": []}
    method, url, kwargs = fake_http.requests[0]
    assert (method, url) == ("POST", "https://indexer.test/graphql")
    assert kwargs["json"] == {"query": "query { x }", "variables": {"a": 1}}


def test_indexer_client_surfaces_graphql_errors(fake_http):
    fake_http.response = FakeResponse(payload={"errors": [{"message": "field not found"}]})
    with pytest.raises(ExternalServiceError, match="field not found"):
        asyncio.run(IndexerClient("https://indexer.test").query("q", {}))

    fake_http.response = FakeResponse(status=503, body=b"down")
    with pytest.raises(ExternalServiceError) as info:
        asyncio.run(IndexerClient("https://indexer.test").query("q", {}))
    assert info.value.status == 503

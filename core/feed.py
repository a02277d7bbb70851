"""
Feed Resolver - paginated roast feed with identity resolution.

fetch_page(page_size, offset) runs two strictly sequential phases:

  Phase 1  Token query on the GraphQL indexer, scoped to the roast
           collection, newest first. Failure here fails the page.
  Phase 2  One Profile query for the deduplicated set of every Roaster /
           Roastee Address on the page. Skipped when the set is empty.
           Failure here only leaves the handles unresolved.

The resolver keeps no state between calls; FeedPager holds the running
offset for "load more".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import aiohttp

from .constants import ROAST_PROTOCOL
from .errors import ExternalServiceError, ValidationError
from .metadata import find_attribute
from .wallet import format_profile_handle

logger = logging.getLogger("roasted.feed")


# ============================================================
# GRAPHQL
# ============================================================

ROAST_TOKENS_QUERY = """
query GetMetadataForTokens($collection: String!, $limit: Int!, $offset: Int!) {
  Token(
    where: { baseAsset_id: { _eq: $collection } }
    order_by: { createdTimestamp: desc }
    limit: $limit
    offset: $offset
  ) {
    id
    tokenId
    formattedTokenId
    name
    description
    lsp4TokenName
    lsp4TokenSymbol
    lsp4TokenType
    baseAsset { id totalSupply }
    icons { url }
    images { url }
    attributes { key value attributeType }
    createdTimestamp
  }
}
"""

PROFILES_QUERY = """
query GetProfiles($addresses: [String!]!) {
  Profile(where: { id: { _in: $addresses } }) {
    id
    name
  }
}
"""


class GraphQLSource(Protocol):
    async def query(self, query: str, variables: dict) -> dict: ...


class IndexerClient:
    """Minimal GraphQL-over-HTTP client for the LUKSO indexer."""

    def __init__(self, url: str, timeout: float = 15.0):
        self.url = url
        self.timeout = timeout

    async def query(self, query: str, variables: dict) -> dict:
        payload = {"query": query, "variables": variables}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise ExternalServiceError(
                            "indexer", f"HTTP {resp.status}: {body[:200]}", resp.status
                        )
                    data = await resp.json()
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError("indexer", f"{type(e).__name__}: {e}")

        if data.get("errors"):
            message = data["errors"][0].get("message", "unknown error")
            raise ExternalServiceError("indexer", f"GraphQL error: {message}")
        return data.get("data") or {}


# ============================================================
# VIEW MODELS
# ============================================================

@dataclass(frozen=True)
class RoastFeedItem:
    id: str
    token_id: str
    raw_attributes: tuple = ()
    created_at: int = 0
    name: str = ""
    description: str = ""
    roaster_address: Optional[str] = None
    roastee_address: Optional[str] = None
    resolved_roaster_handle: Optional[str] = None
    resolved_roastee_handle: Optional[str] = None
    image_urls: tuple = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tokenId": self.token_id,
            "name": self.name,
            "description": self.description,
            "attributes": [dict(a) for a in self.raw_attributes],
            "createdAt": self.created_at,
            "roasterAddress": self.roaster_address,
            "roasteeAddress": self.roastee_address,
            "roaster": self.resolved_roaster_handle,
            "roastee": self.resolved_roastee_handle,
            "images": list(self.image_urls),
        }


@dataclass(frozen=True)
class FeedPage:
    items: tuple
    has_more: bool
    next_offset: int
    identities_resolved: bool = True

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "hasMore": self.has_more,
            "nextOffset": self.next_offset,
            "identitiesResolved": self.identities_resolved,
        }


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value else None


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# ============================================================
# RESOLVER
# ============================================================

class FeedResolver:
    """
    Usage:
        resolver = FeedResolver(IndexerClient(settings.indexer_url), settings.collection_address)
        page = await resolver.fetch_page(10, 0)
    """

    def __init__(self, source: GraphQLSource, collection_address: str = ROAST_PROTOCOL.CONTRACT_ADDRESS):
        self.source = source
        self.collection_address = collection_address.lower()

    async def fetch_page(self, page_size: int = ROAST_PROTOCOL.DEFAULT_PAGE_SIZE, offset: int = 0) -> FeedPage:
        if page_size <= 0:
            raise ValidationError("page_size must be positive")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        # Phase 1: primary records (failure propagates)
        data = await self.source.query(
            ROAST_TOKENS_QUERY,
            {"collection": self.collection_address, "limit": page_size, "offset": offset},
        )
        tokens = data.get("Token") or []

        rows = []
        addresses: set[str] = set()
        for token in tokens:
            attributes = token.get("attributes") or []
            roaster = _lower(find_attribute(attributes, ROAST_PROTOCOL.ATTR_ROASTER))
            roastee = _lower(find_attribute(attributes, ROAST_PROTOCOL.ATTR_ROASTEE))
            if roaster:
                addresses.add(roaster)
            if roastee:
                addresses.add(roastee)
            rows.append((token, roaster, roastee))

        # Phase 2: identity enrichment (failure degrades)
        handles: dict[str, str] = {}
        resolved = True
        if addresses:
            try:
                handles = await self._resolve_handles(sorted(addresses))
            except ExternalServiceError as e:
                resolved = False
                logger.warning(f"Identity resolution failed for {len(addresses)} addresses: {e}")

        items = tuple(
            self._build_item(token, roaster, roastee, handles) for token, roaster, roastee in rows
        )
        logger.debug(
            f"Feed page offset={offset} size={page_size}: {len(items)} items, "
            f"{len(addresses)} addresses, {len(handles)} resolved"
        )
        return FeedPage(
            items=items,
            has_more=len(tokens) == page_size,
            next_offset=offset + page_size,
            identities_resolved=resolved,
        )

    async def _resolve_handles(self, addresses: list[str]) -> dict[str, str]:
        data = await self.source.query(PROFILES_QUERY, {"addresses": addresses})
        handles = {}
        for profile in data.get("Profile") or []:
            address = _lower(profile.get("id"))
            name = profile.get("name")
            if address and name:
                handles[address] = format_profile_handle(name, address)
        return handles

    @staticmethod
    def _build_item(token: dict, roaster: Optional[str], roastee: Optional[str], handles: dict) -> RoastFeedItem:
        attributes = tuple(
            {"key": a.get("key"), "value": a.get("value"), "attributeType": a.get("attributeType")}
            for a in token.get("attributes") or []
        )
        images = tuple(i["url"] for i in token.get("images") or [] if i.get("url"))
        return RoastFeedItem(
            id=token.get("id", ""),
            token_id=token.get("tokenId", ""),
            raw_attributes=attributes,
            created_at=_to_int(token.get("createdTimestamp")),
            name=token.get("name") or "",
            description=token.get("description") or "",
            roaster_address=roaster,
            roastee_address=roastee,
            resolved_roaster_handle=handles.get(roaster) if roaster else None,
            resolved_roastee_handle=handles.get(roastee) if roastee else None,
            image_urls=images,
        )


# ============================================================
# LOAD MORE
# ============================================================

@dataclass
class FeedPager:
    """
    Running "load more" state over a FeedResolver.

    Each load_more() requests the next page at the current offset; items
    whose id was already seen are dropped. Overlapping calls are serialized.
    """
    resolver: FeedResolver
    page_size: int = ROAST_PROTOCOL.DEFAULT_PAGE_SIZE
    offset: int = 0
    has_more: bool = True
    items: list = field(default_factory=list)
    _seen: set = field(default_factory=set)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def load_more(self) -> list[RoastFeedItem]:
        """Fetch the next page. Returns only the newly added items."""
        async with self._lock:
            if not self.has_more:
                return []
            page = await self.resolver.fetch_page(self.page_size, self.offset)
            fresh = [item for item in page.items if item.id not in self._seen]
            self._seen.update(item.id for item in fresh)
            self.items.extend(fresh)
            self.offset = page.next_offset
            self.has_more = page.has_more
            return fresh

    def reset(self) -> None:
        self.offset = 0
        self.has_more = True
        self.items.clear()
        self._seen.clear()

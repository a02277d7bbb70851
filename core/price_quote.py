"""
Native token USD quote (DIA asset quotation API).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import aiohttp

from .errors import ExternalServiceError

logger = logging.getLogger("roasted.price_quote")


@dataclass(frozen=True)
class PriceQuote:
    price: Decimal      # USD per native token
    symbol: str
    timestamp: str

    def to_dict(self) -> dict:
        return {"price": float(self.price), "symbol": self.symbol, "timestamp": self.timestamp}


class PriceQuoteClient:
    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def fetch(self) -> PriceQuote:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        raise ExternalServiceError(
                            "price_quote", f"HTTP error! status: {resp.status}", resp.status
                        )
                    data = await resp.json()
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.warning(f"Price quote fetch failed: {type(e).__name__}: {e}")
            raise ExternalServiceError("price_quote", f"{type(e).__name__}: {e}")

        try:
            price = Decimal(str(data["Price"]))
        except (KeyError, InvalidOperation, TypeError) as e:
            raise ExternalServiceError("price_quote", f"malformed quote: {e}")

        quote = PriceQuote(price=price, symbol=str(data.get("Symbol", "")), timestamp=str(data.get("Time", "")))
        logger.debug(f"Quote: 1 {quote.symbol} = ${quote.price}")
        return quote

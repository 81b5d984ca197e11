"""Exchange-rate widget data from dolarapi.com."""

from __future__ import annotations

import logging

import httpx

from frontpage.models import CurrencyRate
from frontpage.retry import retry_async
from frontpage.sources import register_source
from frontpage.sources.base import BaseAuxiliarySource, SourceError

logger = logging.getLogger(__name__)

DOLAR_API_URL = "https://dolarapi.com/v1/dolares"

# Display order and names of the houses shown in the header widget
HOUSE_NAMES = {
    "oficial": "Dólar Oficial",
    "blue": "Dólar Blue",
    "bolsa": "Dólar MEP",
    "contadoconliqui": "Dólar CCL",
    "tarjeta": "Dólar Tarjeta",
    "cripto": "Dólar Cripto",
}


def to_number(value) -> float:
    """Parse numbers the API sends either as floats or comma-decimal strings."""
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "."))
        except ValueError:
            return 0.0
    return 0.0


def parse_rates(payload) -> list[CurrencyRate]:
    if not isinstance(payload, list):
        raise SourceError("dolarapi returned a non-list payload")

    by_house = {
        item.get("casa"): item for item in payload if isinstance(item, dict)
    }
    return [
        CurrencyRate(
            name=name,
            buy=to_number(by_house[house].get("compra")),
            sell=to_number(by_house[house].get("venta")),
        )
        for house, name in HOUSE_NAMES.items()
        if house in by_house
    ]


@register_source("dolarapi")
class DolarApiSource(BaseAuxiliarySource):
    """Fetch the dollar quotes used by the currency widget."""

    @property
    def name(self) -> str:
        return "dolarapi"

    async def fetch_rates(self) -> list[CurrencyRate]:
        url = self.config.get("url", DOLAR_API_URL)
        payload = await retry_async(
            self._fetch_api, url, self.config.get("timeout", 10),
            max_retries=self.config.get("max_retries", 1),
        )
        rates = parse_rates(payload)
        logger.info("Fetched %d currency rates", len(rates))
        return rates

    @staticmethod
    async def _fetch_api(url: str, timeout: float):
        headers = {"Accept": "application/json"}
        async with httpx.AsyncClient(timeout=timeout, headers=headers) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.json()

# services/rankings/price_source.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from services.rankings.failures import FailureKind, FailureRecorder, FailureSource
from utils.common_helpers import safe_float, safe_json_list

logger = logging.getLogger(__name__)

PriceMap = Dict[str, str]
ChangeMap = Dict[str, str]


def format_change(raw: str, recorder: Optional[FailureRecorder] = None) -> str:
    """
    Render a 24h percent change: "3.5" -> "+3.50%", "-2" -> "-2.00%".
    Unparsable input is returned unchanged.
    """
    value = safe_float(raw)
    if value is None:
        if recorder is not None:
            recorder.record(FailureKind.PARSE, FailureSource.CHANGES, f"unparsable change value {raw!r}")
        else:
            logger.warning("change_parse_failed value=%r", raw)
        return raw
    if value > 0:
        return f"+{value:.2f}%"
    return f"{value:.2f}%"


class BinancePriceSource:
    """
    Polls the two public ticker endpoints in full each cycle.

    The endpoints degrade independently: a failure on one yields an empty map
    for it while the other still populates.
    """

    def __init__(
        self,
        prices_url: str,
        changes_url: str,
        *,
        recorder: FailureRecorder,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.prices_url = prices_url
        self.changes_url = changes_url
        self.recorder = recorder
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> Tuple[PriceMap, ChangeMap]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            prices, changes = await asyncio.gather(
                self._fetch_prices(client),
                self._fetch_changes(client),
            )
        logger.debug("price_source_fetched prices=%d changes=%d", len(prices), len(changes))
        return prices, changes

    async def _get_rows(
        self,
        client: httpx.AsyncClient,
        url: str,
        source: FailureSource,
    ) -> Optional[list]:
        try:
            r = await client.get(url)
            r.raise_for_status()
        except httpx.HTTPError as e:
            self.recorder.record(FailureKind.TRANSPORT, source, f"{type(e).__name__}: {e}")
            return None

        rows = safe_json_list(r)
        if rows is None:
            self.recorder.record(FailureKind.DECODE, source, f"expected a JSON array from {url}")
        return rows

    async def _fetch_prices(self, client: httpx.AsyncClient) -> PriceMap:
        rows = await self._get_rows(client, self.prices_url, FailureSource.PRICES)
        out: PriceMap = {}
        for row in rows or []:
            symbol, price = _pick(row, "price")
            if symbol is not None:
                out[symbol] = price
        return out

    async def _fetch_changes(self, client: httpx.AsyncClient) -> ChangeMap:
        rows = await self._get_rows(client, self.changes_url, FailureSource.CHANGES)
        out: ChangeMap = {}
        for row in rows or []:
            symbol, change = _pick(row, "priceChangePercent")
            if symbol is not None:
                out[symbol] = format_change(change, self.recorder)
        return out


def _pick(row: Any, field_name: str) -> Tuple[Optional[str], str]:
    if not isinstance(row, dict):
        return None, ""
    symbol = row.get("symbol")
    if not isinstance(symbol, str) or not symbol:
        return None, ""
    value = row.get(field_name)
    return symbol, "" if value is None else str(value)

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from market_sync.adapters.base import SourceAdapter
from market_sync.models import FetchResult, RawRecord, TimeRange, utc_now_iso


logger = logging.getLogger("msync.adapters")

USER_AGENT = "market-sync/0.1 (+open data sync)"
SOCRATA_TS_FORMAT = "%Y-%m-%dT%H:%M:%S"


def soql_literal(value: Any) -> str:
    """Quote a value for use inside a SoQL ``$where`` clause."""

    return "'" + str(value).replace("'", "''") + "'"


class SocrataAdapter(SourceAdapter):
    """Generic SODA JSON client.

    Subclasses set ``url`` and optionally ``date_field`` (enables the time
    window filter), ``order`` and ``where``. Pages with ``$limit``/``$offset``
    until a short page, the record cap, or ``max_pages`` is reached.
    """

    url: str = ""
    date_field: Optional[str] = None
    order: Optional[str] = None
    where: Optional[str] = None
    select: Optional[str] = None
    max_pages: int = 100

    def __init__(
        self,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        page_size: int = 1000,
        app_token: Optional[str] = None,
    ):
        self._client = client
        self.timeout = float(timeout)
        self.page_size = max(1, int(page_size))
        self.app_token = app_token

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.app_token:
            headers["X-App-Token"] = self.app_token
        return headers

    def build_where(self, window: Optional[TimeRange], extra_where: Optional[str] = None) -> Optional[str]:
        clauses: List[str] = []
        for w in (self.where, extra_where):
            if w:
                clauses.append(f"({w})")
        if window is not None and self.date_field:
            clauses.append(f"{self.date_field}>={soql_literal(window.start.strftime(SOCRATA_TS_FORMAT))}")
            clauses.append(f"{self.date_field}<={soql_literal(window.end.strftime(SOCRATA_TS_FORMAT))}")
        return " AND ".join(clauses) if clauses else None

    def build_params(
        self,
        *,
        window: Optional[TimeRange],
        limit: int,
        offset: int,
        extra_where: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"$limit": int(limit), "$offset": int(offset)}
        where = self.build_where(window, extra_where)
        if where:
            params["$where"] = where
        order = order or self.order or (f"{self.date_field} DESC" if self.date_field else None)
        if order:
            params["$order"] = order
        if self.select:
            params["$select"] = self.select
        return params

    def get_json(self, client: httpx.Client, url: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = client.get(url, params=params, headers=self._headers())
        if resp.status_code != 200:
            raise httpx.HTTPStatusError(
                f"HTTP {resp.status_code} from {url}", request=resp.request, response=resp
            )
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"expected a JSON array from {url}, got {type(data).__name__}")
        return [r for r in data if isinstance(r, dict)]

    def _open_client(self) -> tuple[httpx.Client, bool]:
        if self._client is not None:
            return self._client, False
        return httpx.Client(timeout=self.timeout, follow_redirects=True), True

    def fetch_pages(
        self,
        *,
        url: str,
        window: Optional[TimeRange],
        limit: int,
        extra_where: Optional[str] = None,
        order: Optional[str] = None,
    ) -> FetchResult:
        cap = max(0, int(limit))
        result = FetchResult(source=self.adapter_key)
        if cap == 0:
            return result

        client, owned = self._open_client()
        try:
            offset = 0
            while len(result.records) < cap and result.pages < self.max_pages:
                want = min(self.page_size, cap - len(result.records))
                params = self.build_params(
                    window=window, limit=want, offset=offset, extra_where=extra_where, order=order
                )
                try:
                    rows = self.get_json(client, url, params)
                except (httpx.HTTPError, ValueError) as e:
                    result.error = str(e) or type(e).__name__
                    logger.warning(
                        "fetch failed source=%s offset=%s: %s",
                        self.adapter_key,
                        offset,
                        result.error,
                        extra={"source": self.adapter_key, "partial": len(result.records)},
                    )
                    break
                result.pages += 1
                fetched_at = utc_now_iso()
                result.records.extend(RawRecord(source=self.adapter_key, payload=r, fetched_at=fetched_at) for r in rows)
                if len(rows) < want:
                    break
                offset += len(rows)
        finally:
            if owned:
                client.close()
        return result

    def fetch(self, window: TimeRange, limit: int) -> FetchResult:
        return self.fetch_pages(url=self.url, window=window, limit=limit)

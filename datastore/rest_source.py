"""HTTP polling source for a PostgREST-style readings table."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from datastore.source import RawRow, SourceError

logger = logging.getLogger(__name__)


class RestReadingSource:
    """Polls a PostgREST-style table endpoint for the newest readings."""

    def __init__(
        self,
        base_url: str,
        table: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.name = f"rest:{table}"
        self._table = table
        headers: Dict[str, str] = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch(self, limit: int) -> List[RawRow]:
        params = {"select": "*", "order": "timestamp.desc", "limit": str(limit)}
        start_time = time.perf_counter()
        try:
            response = self._client.get(f"/rest/v1/{self._table}", params=params)
            response.raise_for_status()
            payload: Any = response.json()
        except httpx.HTTPStatusError as exc:
            raise SourceError(
                f"Reading source returned status {exc.response.status_code}."
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceError(f"Reading source request failed: {exc}") from exc
        except ValueError as exc:
            raise SourceError("Reading source returned invalid JSON.") from exc

        if not isinstance(payload, list):
            raise SourceError("Reading source returned an unexpected payload.")

        logger.debug(
            "Fetched readings",
            extra={
                "source": self.name,
                "reading_count": len(payload),
                "fetch_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return payload

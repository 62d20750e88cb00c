# cm360/retry.py
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Mapping, Optional

from .client import CM360Client
from .errors import UpstreamError
from .pagination import DEFAULT_MAX_PAGES, Page, Paginator

RETRY_STATUS = {408, 409, 425, 429, 500, 502, 503, 504}

log = logging.getLogger(__name__)


def is_retryable(e: UpstreamError) -> bool:
    # status None = falha de rede/timeout
    return e.status is None or e.status in RETRY_STATUS


class RetryingPaginator(Paginator):
    """
    Paginador com retry/backoff por página (opt-in via CM360_MAX_RETRIES).

    - 408/409/425/429/5xx e falhas de rede: até `max_retries` novas tentativas com backoff exponencial + jitter.
    - 401: descarta o token em cache e tenta mais uma vez (uma única vez por página).
    O `fetch_all` herdado usa este `fetch_page`, então cada página tem seu próprio orçamento de tentativas.
    """

    def __init__(
        self,
        client: CM360Client,
        *,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_retries: int = 3,
        backoff_base: float = 1.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(client, max_pages=max_pages)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._sleep = sleep

    async def fetch_page(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        cursor: Optional[str] = None,
        *,
        array_field: str,
        method: str = "GET",
    ) -> Page:
        attempt = 0
        did_refresh = False
        while True:
            attempt += 1
            try:
                return await super().fetch_page(endpoint, params, cursor, array_field=array_field, method=method)
            except UpstreamError as e:
                if e.status == 401 and not did_refresh:
                    log.warning("🔒 401 recebido — descartando token e tentando de novo…")
                    self.client.credentials.invalidate()
                    did_refresh = True
                    continue

                if is_retryable(e) and attempt <= self.max_retries:
                    wait = self.backoff_base ** (attempt - 1) * random.uniform(0.8, 1.2)
                    log.warning(
                        "⚠️ %s em %s — tentativa %d/%d. Aguardando %.2fs…",
                        e.status or "erro de rede", endpoint, attempt, self.max_retries, wait,
                    )
                    await self._sleep(wait)
                    continue
                raise

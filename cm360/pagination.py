# cm360/pagination.py
"""
Paginação por cursor (pageToken) das listagens do CM360.

Dois contratos distintos, expostos como duas operações:
- `fetch_page`: exatamente uma chamada; devolve os itens e o próximo cursor ao chamador.
- `fetch_all`: encadeia os cursores e concatena os itens até acabar ou atingir `max_pages`.

Qualquer UpstreamError numa página aborta a agregação inteira (sem resultado parcial).
Não há retry aqui; ver `cm360.retry`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .client import CM360Client
from .errors import UpstreamError, ValidationError

PAGE_TOKEN_PARAM = "pageToken"
NEXT_PAGE_TOKEN_FIELD = "nextPageToken"
DEFAULT_MAX_PAGES = 10

log = logging.getLogger(__name__)


# ---------------------------
# Tipos
# ---------------------------
@dataclass(frozen=True)
class PageRequest:
    endpoint: str
    params: Mapping[str, Any]
    array_field: str
    cursor: Optional[str] = None
    method: str = "GET"

    def __post_init__(self):
        object.__setattr__(self, "params", MappingProxyType(dict(self.params or {})))

    def outgoing_params(self) -> Dict[str, Any]:
        out = dict(self.params)
        if self.cursor:
            out[PAGE_TOKEN_PARAM] = self.cursor
        return out


@dataclass(frozen=True)
class Page:
    items: List[Any] = field(default_factory=list)
    next_page_token: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return bool(self.next_page_token)


@dataclass(frozen=True)
class AggregatedResult:
    items: List[Any]
    pages: int
    # só presente quando a agregação parou antes de esgotar as páginas (limite max_pages)
    next_page_token: Optional[str] = None


def parse_envelope(data: Any, array_field: str) -> Page:
    """Extrai itens + cursor do envelope; campo ausente ou não-lista vira []."""
    if not isinstance(data, dict):
        raise UpstreamError(f"Envelope inesperado (esperado objeto JSON, recebido {type(data).__name__})", body=data)
    raw_items = data.get(array_field)
    items = list(raw_items) if isinstance(raw_items, list) else []
    token = data.get(NEXT_PAGE_TOKEN_FIELD)
    next_token = token if isinstance(token, str) and token else None
    return Page(items=items, next_page_token=next_token)


# ---------------------------
# Paginador
# ---------------------------
class Paginator:
    def __init__(self, client: CM360Client, *, max_pages: int = DEFAULT_MAX_PAGES):
        if max_pages < 1:
            raise ValueError("max_pages precisa ser >= 1")
        self.client = client
        self.max_pages = max_pages

    async def fetch_page(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        cursor: Optional[str] = None,
        *,
        array_field: str,
        method: str = "GET",
    ) -> Page:
        req = PageRequest(endpoint=endpoint, params=params or {}, array_field=array_field, cursor=cursor, method=method)
        return await self._send(req)

    async def _send(self, req: PageRequest) -> Page:
        if req.method.upper() == "GET":
            data = await self.client.request("GET", req.endpoint, params=req.outgoing_params())
        else:
            data = await self.client.request(req.method, req.endpoint, json=req.outgoing_params())
        page = parse_envelope(data, req.array_field)
        log.info(
            "📄 %s: %d itens (nextPageToken=%s)",
            req.array_field, len(page.items), "sim" if page.has_more else "não",
        )
        return page

    async def aggregate(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        array_field: str,
        max_pages: Optional[int] = None,
    ) -> AggregatedResult:
        limit = self.max_pages if max_pages is None else max_pages
        if limit < 1:
            raise ValidationError(f"maxPages precisa ser >= 1 (recebido {limit})")

        items: List[Any] = []
        cursor: Optional[str] = None
        pages = 0
        while True:
            page = await self.fetch_page(endpoint, params, cursor, array_field=array_field)
            pages += 1
            items.extend(page.items)

            if not page.items:
                return AggregatedResult(items, pages)
            if not page.next_page_token:
                return AggregatedResult(items, pages)
            if pages >= limit:
                log.warning(
                    "⚠️ %s: limite de %d páginas atingido — resultado truncado (%d itens)",
                    array_field, limit, len(items),
                )
                return AggregatedResult(items, pages, next_page_token=page.next_page_token)
            cursor = page.next_page_token

    async def fetch_all(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        array_field: str,
        max_pages: Optional[int] = None,
    ) -> List[Any]:
        result = await self.aggregate(endpoint, params, array_field=array_field, max_pages=max_pages)
        return result.items

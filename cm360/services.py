# cm360/services.py
"""
Camada de serviço: junta catálogo + schemas + paginador num ponto único
consumido pelas duas fachadas (MCP e REST) e pela CLI.
"""
from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import httpx
import pandas as pd

from .auth import CredentialCache, TokenProvider, build_token_provider
from .client import CM360Client, build_http_client
from .config import Settings
from .errors import UpstreamError, ValidationError
from .pagination import Paginator
from .resources import format_path, get_resource
from .retry import RetryingPaginator
from .schemas import ARGS_BY_RESOURCE, CampaignPerformanceArgs, parse_args, to_query

log = logging.getLogger(__name__)

REPORT_FIELDS_MARKER = "Report Fields"
GRAND_TOTAL_PREFIX = "Grand Total"
PERFORMANCE_METRICS = ["impressions", "clicks", "totalConversions", "clickRate"]
FINAL_FILE_STATUSES = {"REPORT_AVAILABLE", "FAILED", "CANCELLED"}


@dataclass(frozen=True)
class RequestContext:
    """Contexto de uma única chamada (anunciante selecionado pelo chamador)."""

    advertiser_id: Optional[int] = None


# ---------------------------
# CSV de relatório
# ---------------------------
def parse_report_csv(text: str) -> List[Dict[str, Any]]:
    """
    Converte o CSV de um relatório CM360 em lista de dicts.

    O arquivo traz um preâmbulo (nome, período, etc.) antes da linha "Report Fields";
    a tabela começa logo depois e termina com uma linha "Grand Total:".
    """
    lines = text.splitlines()
    start = 0
    for i, line in enumerate(lines):
        if line.strip().strip(",") == REPORT_FIELDS_MARKER:
            start = i + 1
            break
    body = "\n".join(lines[start:])
    if not body.strip():
        return []

    df = pd.read_csv(io.StringIO(body), dtype=str)
    if df.empty:
        return []

    first = df.columns[0]
    df = df[~df[first].fillna("").str.startswith(GRAND_TOTAL_PREFIX)].copy()

    # métricas viram número; colunas com qualquer valor não numérico ficam como texto
    for col in df.columns:
        conv = pd.to_numeric(df[col], errors="coerce")
        if conv.notna().sum() == df[col].notna().sum():
            df[col] = conv

    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def build_performance_report(args: CampaignPerformanceArgs) -> Dict[str, Any]:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return {
        "type": "STANDARD",
        "name": f"Campaign Performance {args.campaignId} {stamp}",
        "format": "CSV",
        "criteria": {
            "dateRange": {
                "startDate": args.startDate.isoformat(),
                "endDate": args.endDate.isoformat(),
            },
            "dimensions": [{"name": "date"}, {"name": "campaign"}],
            "dimensionFilters": [
                {"dimensionName": "campaign", "id": str(args.campaignId), "kind": "dfareporting#dimensionValue"}
            ],
            "metricNames": list(PERFORMANCE_METRICS),
        },
        "delivery": {"emailOwner": False},
        "schedule": {"active": False},
    }


# ---------------------------
# Serviço
# ---------------------------
class CM360Service:
    def __init__(
        self,
        client: CM360Client,
        paginator: Paginator,
        *,
        account_id: Optional[str] = None,
        poll_attempts: int = 6,
        poll_interval: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.paginator = paginator
        self.account_id = account_id
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._sleep = sleep

    async def aclose(self) -> None:
        await self.client.http.aclose()

    # --- listagens (Mode A / Mode B) ---
    async def list_resource(
        self,
        name: str,
        args: Optional[Mapping[str, Any]] = None,
        context: Optional[RequestContext] = None,
        *,
        all_pages: bool = False,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Lista um recurso do catálogo.

        - all_pages=False: uma página; devolve `{"<campo>": [...], "nextPageToken": str|None}`.
        - all_pages=True: agrega até `max_pages` páginas; devolve `{"<campo>": [...]}`.
        """
        spec = get_resource(name)
        parsed = parse_args(ARGS_BY_RESOURCE[spec.name], args)
        params = to_query(parsed)

        if spec.advertiser_scoped and "advertiserIds" not in params and context and context.advertiser_id:
            params["advertiserIds"] = [context.advertiser_id]

        endpoint = format_path(spec.path, **parsed.model_dump())

        if all_pages:
            if parsed.pageToken:
                raise ValidationError("pageToken não pode ser combinado com a listagem completa (all)")
            max_pages = self._page_limit(max_pages)
            items = await self.paginator.fetch_all(
                endpoint, params, array_field=spec.array_field, max_pages=max_pages
            )
            return {spec.array_field: items}

        page = await self.paginator.fetch_page(endpoint, params, parsed.pageToken, array_field=spec.array_field)
        return {spec.array_field: page.items, "nextPageToken": page.next_page_token}

    # --- leituras unitárias ---
    def check_account(self, account_id: Any) -> None:
        """O perfil enxerga uma única conta; outro accountId é erro do chamador."""
        if self.account_id and str(account_id) != str(self.account_id):
            raise ValidationError(
                f"accountId {account_id} não corresponde à conta configurada ({self.account_id})"
            )

    async def get_account(self, account_id: Any) -> Dict[str, Any]:
        return await self.client.get(format_path("/accounts/{accountId}", accountId=account_id))

    async def get_campaign(self, campaign_id: Any) -> Dict[str, Any]:
        return await self.client.get(format_path("/campaigns/{campaignId}", campaignId=campaign_id))

    async def get_report(self, report_id: Any) -> Dict[str, Any]:
        return await self.client.get(format_path("/reports/{reportId}", reportId=report_id))

    def _page_limit(self, requested: Optional[int]) -> int:
        # o teto configurado (CM360_MAX_PAGES) vale para qualquer chamador
        ceiling = self.paginator.max_pages
        if requested is None:
            return ceiling
        if requested < 1:
            raise ValidationError(f"maxPages precisa ser >= 1 (recebido {requested})")
        if requested > ceiling:
            log.warning("maxPages=%d acima do limite configurado; usando %d", requested, ceiling)
            return ceiling
        return requested

    async def list_report_files(
        self,
        report_id: Any,
        args: Optional[Mapping[str, Any]] = None,
        *,
        all_pages: bool = False,
        max_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        raw = dict(args or {})
        raw["reportId"] = report_id
        return await self.list_resource("reportFiles", raw, all_pages=all_pages, max_pages=max_pages)

    async def get_report_file(self, report_id: Any, file_id: Any) -> Dict[str, Any]:
        path = format_path("/reports/{reportId}/files/{fileId}", reportId=report_id, fileId=file_id)
        return await self.client.get(path)

    async def download_report_file(self, report_id: Any, file_id: Any) -> List[Dict[str, Any]]:
        path = format_path("/reports/{reportId}/files/{fileId}", reportId=report_id, fileId=file_id)
        text = await self.client.get(path, {"alt": "media"}, raw=True)
        rows = parse_report_csv(text)
        log.info("📥 Relatório %s / arquivo %s: %d linhas", report_id, file_id, len(rows))
        return rows

    async def run_report(self, report_id: Any) -> Dict[str, Any]:
        path = format_path("/reports/{reportId}/run", reportId=report_id)
        return await self.client.post(path)

    # --- desempenho de campanha ---
    async def get_campaign_performance(self, args: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Cria um relatório STANDARD (data × campanha), executa e aguarda o arquivo.

        Se o arquivo não ficar pronto dentro de `poll_attempts` consultas, devolve
        `{"status": "processing", ...}` com os ids para consulta posterior.
        """
        parsed = parse_args(CampaignPerformanceArgs, args)

        report = await self.client.post("/reports", json=build_performance_report(parsed))
        report_id = report.get("id") if isinstance(report, dict) else None
        if not report_id:
            raise UpstreamError("Relatório criado sem id", body=report)
        log.info("📊 Relatório %s criado para a campanha %s", report_id, parsed.campaignId)

        file = await self.run_report(report_id)
        file_id = file.get("id") if isinstance(file, dict) else None
        if not file_id:
            raise UpstreamError(f"Execução do relatório {report_id} sem id de arquivo", body=file)

        attempts = 0
        while file.get("status") not in FINAL_FILE_STATUSES and attempts < self.poll_attempts:
            attempts += 1
            log.info("⏳ Arquivo %s ainda em processamento (%d/%d)…", file_id, attempts, self.poll_attempts)
            await self._sleep(self.poll_interval)
            file = await self.get_report_file(report_id, file_id)

        status = file.get("status")
        if status == "REPORT_AVAILABLE":
            rows = await self.download_report_file(report_id, file_id)
            return {
                "status": "available",
                "reportId": str(report_id),
                "fileId": str(file_id),
                "rows": rows,
            }
        if status in ("FAILED", "CANCELLED"):
            raise UpstreamError(f"Relatório {report_id} terminou com status {status}", body=file)

        log.warning("⚠️ Relatório %s ainda em processamento após %d consultas", report_id, attempts)
        return {
            "status": "processing",
            "reportId": str(report_id),
            "fileId": str(file_id),
            "message": "Relatório ainda em processamento. Tente novamente mais tarde.",
        }


# ---------------------------
# Montagem
# ---------------------------
def build_paginator(client: CM360Client, settings: Settings) -> Paginator:
    if settings.max_retries > 0:
        return RetryingPaginator(
            client,
            max_pages=settings.max_pages,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
        )
    return Paginator(client, max_pages=settings.max_pages)


def build_service(
    settings: Settings,
    *,
    provider: Optional[TokenProvider] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CM360Service:
    """Monta cliente HTTP, cache de credencial e paginador a partir das configurações."""
    credentials = CredentialCache(
        provider or build_token_provider(settings),
        safety_margin=settings.token_safety_margin,
    )
    http = build_http_client(settings, transport=transport)
    client = CM360Client(http, credentials, settings.profile_base_url, timeout=settings.request_timeout)
    return CM360Service(
        client,
        build_paginator(client, settings),
        account_id=settings.account_id,
        poll_attempts=settings.report_poll_attempts,
        poll_interval=settings.report_poll_interval,
    )

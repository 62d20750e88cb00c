# cm360/mcp_server.py
"""
Fachada MCP (fastmcp): tools paginadas (uma página + nextPageToken) e
resources agregados (todas as páginas até CM360_MAX_PAGES).

O anunciante padrão vem de CM360_DEFAULT_ADVERTISER_ID e vale para todas as chamadas.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ResourceError, ToolError

from .config import Settings
from .errors import CM360Error
from .services import CM360Service, RequestContext, build_service

log = logging.getLogger(__name__)

SERVER_NAME = "cm360"
JSON_MIME = "application/json"


def to_json_text(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _drop_none(**kwargs) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


async def run_tool(label: str, call: Awaitable[Any]) -> str:
    """Executa a chamada e devolve JSON; qualquer falha vira ToolError com a mensagem."""
    try:
        result = await call
    except CM360Error as e:
        log.error("❌ Tool %s falhou (%s): %s", label, e.code, e.message)
        raise ToolError(f"{e.code}: {e.message}") from e
    except Exception as e:
        log.exception("❌ Erro inesperado na tool %s", label)
        raise ToolError(f"INTERNAL_SERVER_ERROR: {e}") from e
    return to_json_text(result)


async def read_resource(uri: str, call: Awaitable[Any]) -> str:
    try:
        result = await call
    except CM360Error as e:
        log.error("❌ Resource %s falhou (%s): %s", uri, e.code, e.message)
        raise ResourceError(f"{e.code}: {e.message}") from e
    return to_json_text(result)


def create_mcp_server(service: CM360Service, settings: Optional[Settings] = None) -> FastMCP:
    mcp = FastMCP(SERVER_NAME)
    context = RequestContext(advertiser_id=settings.default_advertiser_id if settings else None)

    # ---------------------------
    # Tools (uma página por chamada)
    # ---------------------------
    @mcp.tool(name="list-advertisers", description="Lista os anunciantes do perfil (uma página + nextPageToken).")
    async def list_advertisers(
        searchString: str = "",
        maxResults: Optional[int] = None,
        pageToken: Optional[str] = None,
    ) -> str:
        args = _drop_none(searchString=searchString, maxResults=maxResults, pageToken=pageToken)
        return await run_tool("list-advertisers", service.list_resource("advertisers", args, context))

    @mcp.tool(name="list-campaigns", description="Lista campanhas, filtráveis por anunciante (uma página + nextPageToken).")
    async def list_campaigns(
        searchString: str = "",
        advertiserIds: Optional[List[int]] = None,
        maxResults: Optional[int] = None,
        pageToken: Optional[str] = None,
    ) -> str:
        args = _drop_none(
            searchString=searchString, advertiserIds=advertiserIds, maxResults=maxResults, pageToken=pageToken
        )
        return await run_tool("list-campaigns", service.list_resource("campaigns", args, context))

    def _campaign_filtered(tool_name: str, resource: str, description: str) -> None:
        async def handler(
            searchString: str = "",
            advertiserIds: Optional[List[int]] = None,
            campaignIds: Optional[List[int]] = None,
            maxResults: Optional[int] = None,
            pageToken: Optional[str] = None,
        ) -> str:
            args = _drop_none(
                searchString=searchString,
                advertiserIds=advertiserIds,
                campaignIds=campaignIds,
                maxResults=maxResults,
                pageToken=pageToken,
            )
            return await run_tool(tool_name, service.list_resource(resource, args, context))

        mcp.tool(handler, name=tool_name, description=description)

    _campaign_filtered("list-creatives", "creatives", "Lista criativos (uma página + nextPageToken).")
    _campaign_filtered("list-creative-groups", "creativeGroups", "Lista grupos de criativos (uma página + nextPageToken).")
    _campaign_filtered("list-event-tags", "eventTags", "Lista event tags (uma página + nextPageToken).")
    _campaign_filtered("list-placements", "placements", "Lista posicionamentos (uma página + nextPageToken).")

    @mcp.tool(
        name="list-campaign-creative-associations",
        description="Lista as associações criativo ↔ campanha de uma campanha (uma página + nextPageToken).",
    )
    async def list_campaign_creative_associations(
        campaignId: int,
        maxResults: Optional[int] = None,
        pageToken: Optional[str] = None,
    ) -> str:
        args = _drop_none(campaignId=campaignId, maxResults=maxResults, pageToken=pageToken)
        return await run_tool(
            "list-campaign-creative-associations",
            service.list_resource("campaignCreativeAssociations", args, context),
        )

    @mcp.tool(
        name="get-campaign-performance",
        description="Gera e lê um relatório de desempenho (impressões, cliques, conversões, CTR) por dia.",
    )
    async def get_campaign_performance(campaignId: int, startDate: str, endDate: str) -> str:
        args = {"campaignId": campaignId, "startDate": startDate, "endDate": endDate}
        return await run_tool("get-campaign-performance", service.get_campaign_performance(args))

    # ---------------------------
    # Resources (agregados)
    # ---------------------------
    async def _account(accountId: str) -> Any:
        service.check_account(accountId)
        return await service.get_account(accountId)

    async def _campaign(accountId: str, campaignId: str) -> Any:
        service.check_account(accountId)
        return await service.get_campaign(campaignId)

    async def _list_all(accountId: str, resource: str) -> Any:
        service.check_account(accountId)
        return await service.list_resource(resource, None, context, all_pages=True)

    @mcp.resource("cm360://accounts/{accountId}", name="account", mime_type=JSON_MIME)
    async def account_resource(accountId: str) -> str:
        return await read_resource(f"cm360://accounts/{accountId}", _account(accountId))

    @mcp.resource("cm360://accounts/{accountId}/campaigns", name="campaigns", mime_type=JSON_MIME)
    async def campaigns_resource(accountId: str) -> str:
        return await read_resource(f"cm360://accounts/{accountId}/campaigns", _list_all(accountId, "campaigns"))

    @mcp.resource("cm360://accounts/{accountId}/campaigns/{campaignId}", name="campaign", mime_type=JSON_MIME)
    async def campaign_resource(accountId: str, campaignId: str) -> str:
        return await read_resource(
            f"cm360://accounts/{accountId}/campaigns/{campaignId}", _campaign(accountId, campaignId)
        )

    @mcp.resource("cm360://accounts/{accountId}/reports", name="reports", mime_type=JSON_MIME)
    async def reports_resource(accountId: str) -> str:
        return await read_resource(f"cm360://accounts/{accountId}/reports", _list_all(accountId, "reports"))

    return mcp


async def serve_stdio(settings: Settings) -> None:
    """Sobe o servidor MCP em stdio; o cliente HTTP é fechado ao sair."""
    service = build_service(settings)
    mcp = create_mcp_server(service, settings)
    log.info("🚀 Servidor MCP '%s' em stdio (profile=%s)", SERVER_NAME, settings.profile_id)
    try:
        await mcp.run_async(transport="stdio")
    finally:
        await service.aclose()

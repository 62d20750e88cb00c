# cm360/rest_api.py
"""
Fachada REST (FastAPI) sob /api/v1.

Envelope de sucesso: {"success": true, "data": ...}
Envelope de erro:    {"success": false, "error": {"code", "message", "details"?}}
Listagens devolvem uma página (+ nextPageToken); com ?all=true agregam até maxPages
(nunca acima de CM360_MAX_PAGES).
"""
from __future__ import annotations

import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, load_settings
from .errors import AuthError, CM360Error, UpstreamError, ValidationError
from .services import CM360Service, RequestContext, build_service

log = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
ADVERTISER_HEADER = "X-Advertiser-Id"

# listagens expostas em /api/v1/{resource}
LISTABLE = {
    "advertisers",
    "campaigns",
    "creatives",
    "creative-groups",
    "creativeGroups",
    "event-tags",
    "eventTags",
    "placements",
}


# ---------------------------
# Envelopes / erros
# ---------------------------
def ok(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code)


def error_body(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    err: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        err["details"] = details
    return {"success": False, "error": err}


def status_for(e: CM360Error) -> int:
    if isinstance(e, ValidationError):
        return 400
    if isinstance(e, AuthError):
        return 503
    if isinstance(e, UpstreamError):
        return 404 if e.status == 404 else 502
    return 500


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(CM360Error)
    async def _cm360_error(request: Request, exc: CM360Error):
        status = status_for(exc)
        log.error("❌ %s %s → %d %s: %s", request.method, request.url.path, status, exc.code, exc.message)
        return JSONResponse(error_body(exc.code, exc.message, exc.details), status_code=status)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        details = [{k: v for k, v in e.items() if k in ("loc", "msg", "type")} for e in exc.errors()]
        return JSONResponse(error_body("VALIDATION_ERROR", "Parâmetros inválidos", details), status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            body = error_body("NOT_FOUND", f"Rota não encontrada: {request.method} {request.url.path}")
        else:
            body = error_body("HTTP_ERROR", str(exc.detail))
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        log.exception("❌ Erro inesperado em %s %s", request.method, request.url.path)
        details = traceback.format_exception(type(exc), exc, exc.__traceback__) if settings.is_development else None
        return JSONResponse(error_body("INTERNAL_SERVER_ERROR", str(exc) or "Erro interno", details), status_code=500)


# ---------------------------
# Dependências / helpers
# ---------------------------
def get_service(request: Request) -> CM360Service:
    return request.app.state.service


def get_context(request: Request) -> RequestContext:
    raw = request.headers.get(ADVERTISER_HEADER)
    if raw is None or raw.strip() == "":
        return RequestContext()
    try:
        return RequestContext(advertiser_id=int(raw))
    except ValueError:
        raise ValidationError(f"Header {ADVERTISER_HEADER} inválido: {raw!r}") from None


def _split_ids(values: Optional[List[str]]) -> Optional[List[str]]:
    # aceita ?advertiserIds=1&advertiserIds=2 e ?advertiserIds=1,2
    if not values:
        return None
    out = [p.strip() for v in values for p in v.split(",") if p.strip()]
    return out or None


def _max_pages(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"maxPages inválido: {raw!r}") from None


def _list_args(
    searchString: Optional[str] = None,
    maxResults: Optional[str] = None,
    pageToken: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    args = {"searchString": searchString, "maxResults": maxResults, "pageToken": pageToken, **extra}
    return {k: v for k, v in args.items() if v is not None}


# ---------------------------
# Rotas
# ---------------------------
router = APIRouter(prefix=API_PREFIX)


@router.get("/health")
async def health():
    return ok({"status": "ok", "version": __version__})


@router.get("/accounts")
async def list_accounts(
    searchString: Optional[str] = None,
    maxResults: Optional[str] = None,
    pageToken: Optional[str] = None,
    all: bool = False,
    maxPages: Optional[str] = None,
    service: CM360Service = Depends(get_service),
):
    args = _list_args(searchString, maxResults, pageToken)
    data = await service.list_resource("accounts", args, all_pages=all, max_pages=_max_pages(maxPages))
    return ok(data)


@router.get("/accounts/{account_id}")
async def get_account(account_id: str, service: CM360Service = Depends(get_service)):
    return ok(await service.get_account(account_id))


@router.get("/campaigns/{campaign_id}")
async def get_campaign(campaign_id: str, service: CM360Service = Depends(get_service)):
    return ok(await service.get_campaign(campaign_id))


@router.get("/campaigns/{campaign_id}/creative-associations")
async def list_creative_associations(
    campaign_id: str,
    maxResults: Optional[str] = None,
    pageToken: Optional[str] = None,
    all: bool = False,
    maxPages: Optional[str] = None,
    service: CM360Service = Depends(get_service),
):
    args = _list_args(maxResults=maxResults, pageToken=pageToken, campaignId=campaign_id)
    data = await service.list_resource(
        "campaignCreativeAssociations", args, all_pages=all, max_pages=_max_pages(maxPages)
    )
    return ok(data)


@router.get("/campaigns/{campaign_id}/performance")
async def get_campaign_performance(
    campaign_id: str,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    service: CM360Service = Depends(get_service),
):
    args = {k: v for k, v in {"campaignId": campaign_id, "startDate": startDate, "endDate": endDate}.items() if v}
    data = await service.get_campaign_performance(args)
    # relatório ainda não pronto: aceito, consultar depois pelos ids devolvidos
    return ok(data, status_code=202 if data.get("status") == "processing" else 200)


@router.get("/reports")
async def list_reports(
    maxResults: Optional[str] = None,
    pageToken: Optional[str] = None,
    all: bool = False,
    maxPages: Optional[str] = None,
    service: CM360Service = Depends(get_service),
):
    args = _list_args(maxResults=maxResults, pageToken=pageToken)
    data = await service.list_resource("reports", args, all_pages=all, max_pages=_max_pages(maxPages))
    return ok(data)


@router.get("/reports/{report_id}")
async def get_report(report_id: str, service: CM360Service = Depends(get_service)):
    return ok(await service.get_report(report_id))


@router.post("/reports/{report_id}/run")
async def run_report(report_id: str, service: CM360Service = Depends(get_service)):
    return ok(await service.run_report(report_id), status_code=202)


@router.get("/reports/{report_id}/files")
async def list_report_files(
    report_id: str,
    maxResults: Optional[str] = None,
    pageToken: Optional[str] = None,
    all: bool = False,
    maxPages: Optional[str] = None,
    service: CM360Service = Depends(get_service),
):
    args = _list_args(maxResults=maxResults, pageToken=pageToken)
    data = await service.list_report_files(report_id, args, all_pages=all, max_pages=_max_pages(maxPages))
    return ok(data)


@router.get("/reports/{report_id}/files/{file_id}")
async def get_report_file(report_id: str, file_id: str, service: CM360Service = Depends(get_service)):
    return ok(await service.get_report_file(report_id, file_id))


@router.get("/reports/{report_id}/files/{file_id}/data")
async def get_report_file_data(report_id: str, file_id: str, service: CM360Service = Depends(get_service)):
    rows = await service.download_report_file(report_id, file_id)
    return ok({"rows": rows, "count": len(rows)})


@router.get("/{resource}")
async def list_resource(
    resource: str,
    searchString: Optional[str] = None,
    advertiserIds: Optional[List[str]] = Query(None),
    campaignIds: Optional[List[str]] = Query(None),
    maxResults: Optional[str] = None,
    pageToken: Optional[str] = None,
    all: bool = False,
    maxPages: Optional[str] = None,
    service: CM360Service = Depends(get_service),
    context: RequestContext = Depends(get_context),
):
    if resource not in LISTABLE:
        raise StarletteHTTPException(status_code=404)
    extra: Dict[str, Any] = {}
    ids = _split_ids(advertiserIds)
    if ids:
        extra["advertiserIds"] = ids
    ids = _split_ids(campaignIds)
    if ids:
        extra["campaignIds"] = ids
    args = _list_args(searchString, maxResults, pageToken, **extra)
    data = await service.list_resource(resource, args, context, all_pages=all, max_pages=_max_pages(maxPages))
    return ok(data)


# ---------------------------
# App
# ---------------------------
def create_app(service: Optional[CM360Service] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Monta a aplicação. Sem `service`, o serviço é criado no startup (lifespan)
    a partir das configurações e fechado no shutdown.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.service is None
        if owned:
            app.state.service = build_service(settings)
        log.info("🚀 API CM360 pronta (profile=%s, env=%s)", settings.profile_id, settings.app_env)
        try:
            yield
        finally:
            if owned:
                await app.state.service.aclose()
                app.state.service = None

    app = FastAPI(title="CM360 API", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.state.settings = settings

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.endswith("/health"):
            return response
        ms = (time.perf_counter() - start) * 1000
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        log.log(level, "%s %s → %d (%.0fms)", request.method, request.url.path, response.status_code, ms)
        return response

    _install_error_handlers(app, settings)
    app.include_router(router)
    return app

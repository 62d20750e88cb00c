# cm360/client.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from . import __version__
from .auth import CredentialCache
from .config import Settings
from .errors import UpstreamError

DEFAULT_TIMEOUT = 5.0
MAX_ERROR_BODY = 2000

log = logging.getLogger(__name__)


def build_http_client(settings: Settings | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Cria o `httpx.AsyncClient` compartilhado (timeouts/headers centralizados)."""
    timeout = settings.request_timeout if settings else DEFAULT_TIMEOUT
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={
            "Accept": "application/json",
            "User-Agent": f"mcp-cm360/{__version__}",
        },
        transport=transport,
    )


def _clean_value(v: Any) -> Any:
    if isinstance(v, bool):
        return "true" if v else "false"
    return v


def clean_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Remove None e normaliza bool/listas (listas viram parâmetros repetidos na query)."""
    out: Dict[str, Any] = {}
    for k, v in (params or {}).items():
        if v is None:
            continue
        if isinstance(v, (list, tuple)):
            values: List[Any] = [_clean_value(x) for x in v if x is not None]
            if values:
                out[k] = values
            continue
        out[k] = _clean_value(v)
    return out


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text[:MAX_ERROR_BODY]


def _error_message(status: int, body: Any) -> str:
    # Formato de erro das APIs Google: {"error": {"code": ..., "message": ...}}
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return f"HTTP {status}: {err['message']}"
    return f"HTTP {status}"


class CM360Client:
    """Uma chamada autenticada à API do CM360. Sem retry: falhas viram UpstreamError."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialCache,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.http = http
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def build_url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
            return path_or_url
        if not path_or_url.startswith("/"):
            path_or_url = "/" + path_or_url
        return f"{self.base_url}{path_or_url}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        raw: bool = False,
    ) -> Any:
        url = self.build_url(path)
        credential = await self.credentials.get_token()
        headers = {"Authorization": f"Bearer {credential.token}"}
        safe_params = clean_params(params)

        log.info("➡️ %s %s", method.upper(), url)
        log.debug("params=%s", safe_params)
        try:
            resp = await self.http.request(
                method.upper(),
                url,
                params=safe_params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            log.error("⏱️ Timeout (%.1fs) em %s", self.timeout, url)
            raise UpstreamError(f"Timeout após {self.timeout}s em {url}", url=url) from e
        except httpx.HTTPError as e:
            log.error("❌ Falha de rede em %s: %s", url, e)
            raise UpstreamError(f"Falha de rede em {url}: {e}", url=url) from e

        if not resp.is_success:
            body = _error_body(resp)
            log.error("Erro %s em %s: %s", resp.status_code, url, str(body)[:400])
            raise UpstreamError(
                _error_message(resp.status_code, body), status=resp.status_code, body=body, url=url
            )

        if raw:
            return resp.text
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(
                f"Resposta não-JSON em {url}", status=resp.status_code, body=resp.text[:MAX_ERROR_BODY], url=url
            ) from e

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, *, raw: bool = False) -> Any:
        return await self.request("GET", path, params=params, raw=raw)

    async def post(self, path: str, *, params: Optional[Mapping[str, Any]] = None, json: Any = None) -> Any:
        return await self.request("POST", path, params=params, json=json)

# cm360/auth.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional, Protocol, Sequence

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from .config import DEFAULT_SCOPES, Settings, load_service_account_info
from .errors import AuthError

log = logging.getLogger(__name__)

# Margem de segurança antes da expiração e tempo de vida assumido quando o provedor não informa
DEFAULT_SAFETY_MARGIN = 60
DEFAULT_TOKEN_LIFETIME = 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------
# Tipos
# ---------------------------
class TokenGrant(NamedTuple):
    """Resposta crua do provedor: token + segundos até expirar (None = não informado)."""

    token: str
    expires_in: Optional[float] = None


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: datetime

    def seconds_left(self, now: datetime) -> float:
        return (self.expires_at - now).total_seconds()

    def is_fresh(self, now: datetime, margin: float) -> bool:
        return self.seconds_left(now) > margin


class TokenProvider(Protocol):
    async def fetch(self) -> TokenGrant: ...


# ---------------------------
# Provedores
# ---------------------------
class ServiceAccountTokenProvider:
    """
    Emite access tokens via service account (JWT assertion → OAuth2).

    O JSON da chave é injetado no construtor (ver `load_service_account_info`).
    O refresh do google-auth é bloqueante, então roda numa thread.
    """

    def __init__(
        self,
        key_info: Dict[str, Any],
        scopes: Sequence[str] = DEFAULT_SCOPES,
        session: Optional[requests.Session] = None,
    ):
        self._key_info = key_info
        self._scopes = list(scopes)
        self._session = session or requests.Session()
        self._credentials: Optional[service_account.Credentials] = None

    @property
    def client_email(self) -> Optional[str]:
        return self._key_info.get("client_email")

    def _refresh_blocking(self) -> TokenGrant:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_info(
                self._key_info, scopes=self._scopes
            )
        self._credentials.refresh(GoogleAuthRequest(session=self._session))

        expires_in: Optional[float] = None
        if self._credentials.expiry is not None:
            # google-auth devolve expiry "naive" em UTC
            expiry = self._credentials.expiry.replace(tzinfo=timezone.utc)
            expires_in = (expiry - _utcnow()).total_seconds()
        return TokenGrant(self._credentials.token, expires_in)

    async def fetch(self) -> TokenGrant:
        log.info("🔄 Solicitando access token da service account %s...", self.client_email)
        try:
            return await asyncio.to_thread(self._refresh_blocking)
        except (GoogleAuthError, ValueError, requests.RequestException) as e:
            log.error("Erro ao obter token da service account: %s", e)
            raise AuthError(f"Falha ao obter token da service account: {e}") from e


class StaticTokenProvider:
    """Token fixo (CM360_ACCESS_TOKEN) para desenvolvimento/diagnóstico."""

    def __init__(self, token: str):
        self._token = token

    async def fetch(self) -> TokenGrant:
        return TokenGrant(self._token, None)


def build_token_provider(settings: Settings) -> TokenProvider:
    if settings.credentials_path:
        try:
            key_info = load_service_account_info(settings.credentials_path)
        except (RuntimeError, ValueError) as e:
            raise AuthError(str(e)) from e
        return ServiceAccountTokenProvider(key_info, scopes=settings.scopes)
    if settings.access_token:
        log.warning("Usando CM360_ACCESS_TOKEN estático — o token não será renovado.")
        return StaticTokenProvider(settings.access_token)
    raise AuthError("Nenhuma credencial configurada (GOOGLE_APPLICATION_CREDENTIALS ou CM360_ACCESS_TOKEN).")


# ---------------------------
# Cache de credencial
# ---------------------------
class CredentialCache:
    """
    Entrega um bearer token válido a todas as chamadas, renovando só quando necessário.

    - Reaproveita o token enquanto faltar mais que `safety_margin` segundos para expirar.
    - No máximo um refresh em andamento (lock + nova checagem após adquirir).
    - A credencial é imutável; o refresh troca a referência inteira.
    """

    def __init__(
        self,
        provider: TokenProvider,
        *,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        default_lifetime: float = DEFAULT_TOKEN_LIFETIME,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._provider = provider
        self._safety_margin = safety_margin
        self._default_lifetime = default_lifetime
        self._now = now
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def current(self) -> Optional[Credential]:
        return self._credential

    def invalidate(self) -> None:
        """Descarta o token em cache (próximo get_token força refresh)."""
        self._credential = None

    async def get_token(self) -> Credential:
        cred = self._credential
        if cred is not None and cred.is_fresh(self._now(), self._safety_margin):
            return cred

        async with self._lock:
            # outra task pode ter renovado enquanto esperávamos o lock
            cred = self._credential
            if cred is not None and cred.is_fresh(self._now(), self._safety_margin):
                return cred
            cred = await self._refresh()
            self._credential = cred
            return cred

    async def _refresh(self) -> Credential:
        try:
            grant = await self._provider.fetch()
        except AuthError:
            raise
        except Exception as e:
            log.error("Erro ao obter access token: %s", e)
            raise AuthError(f"Falha ao obter access token: {e}") from e

        token = getattr(grant, "token", None)
        if not isinstance(token, str) or not token:
            raise AuthError("Resposta do provedor sem access token")

        expires_in = getattr(grant, "expires_in", None)
        if expires_in is None:
            expires_in = self._default_lifetime
        elif not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool) or expires_in <= 0:
            raise AuthError(f"expires_in inválido na resposta do provedor: {expires_in!r}")

        self.refresh_count += 1
        expires_at = self._now() + timedelta(seconds=float(expires_in))
        log.info("🔑 Novo access token obtido (expira em %ds)", int(expires_in))
        return Credential(token=token, expires_at=expires_at)

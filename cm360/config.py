# cm360/config.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

# Raiz do projeto: .../mcp-cm360
ROOT_DIR = Path(__file__).resolve().parents[1]
DOTENV_PATH = ROOT_DIR / ".env"

DEFAULT_API_BASE_URL = "https://dfareporting.googleapis.com/dfareporting/v4"
DEFAULT_SCOPES: Tuple[str, ...] = (
    "https://www.googleapis.com/auth/dfareporting",
    "https://www.googleapis.com/auth/dfatrafficking",
)

log = logging.getLogger(__name__)


def _env_any(*keys: str, default: str | None = None):
    """Lê a primeira variável disponível entre várias chaves alternativas."""
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _env_int(*keys: str, default: int) -> int:
    raw = _env_any(*keys)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Valor inválido para {keys[0]}: {raw!r} (esperado inteiro)")


def _env_float(*keys: str, default: float) -> float:
    raw = _env_any(*keys)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Valor inválido para {keys[0]}: {raw!r} (esperado número)")


def _warn_missing(name: str, value):
    if not value:
        log.warning(
            "[config] Variável %s ausente. .env existe? %s  caminho: %s",
            name, DOTENV_PATH.exists(), DOTENV_PATH
        )


@dataclass(frozen=True)
class Settings:
    profile_id: Optional[str] = None
    credentials_path: Optional[str] = None
    access_token: Optional[str] = None
    account_id: Optional[str] = None
    default_advertiser_id: Optional[int] = None
    api_base_url: str = DEFAULT_API_BASE_URL
    scopes: Tuple[str, ...] = DEFAULT_SCOPES

    # --- Núcleo (paginação / credenciais) ---
    request_timeout: float = 5.0
    max_pages: int = 10
    max_retries: int = 0
    backoff_base: float = 1.5
    token_safety_margin: int = 60

    # --- Relatórios ---
    report_poll_attempts: int = 6
    report_poll_interval: float = 5.0

    # --- Servidor / logging ---
    app_env: str = "production"
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def profile_base_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/userprofiles/{self.profile_id}"


def load_settings(dotenv_path: Path | None = DOTENV_PATH) -> Settings:
    """Monta as configurações a partir do ambiente (.env não sobrescreve o ambiente do sistema)."""
    if dotenv_path is not None:
        load_dotenv(dotenv_path=str(dotenv_path), override=False)

    scopes_raw = _env_any("CM360_SCOPES")
    scopes = tuple(s.strip() for s in scopes_raw.split(",") if s.strip()) if scopes_raw else DEFAULT_SCOPES

    default_adv = _env_any("CM360_DEFAULT_ADVERTISER_ID", "CM360_ADVERTISER_ID")

    return Settings(
        profile_id=_env_any("CM360_PROFILE_ID", "PROFILE_ID"),
        credentials_path=_env_any("GOOGLE_APPLICATION_CREDENTIALS", "CM360_CREDENTIALS_PATH"),
        access_token=_env_any("CM360_ACCESS_TOKEN"),
        account_id=_env_any("CM360_ACCOUNT_ID"),
        default_advertiser_id=int(default_adv) if default_adv else None,
        api_base_url=_env_any("CM360_API_BASE_URL", default=DEFAULT_API_BASE_URL),
        scopes=scopes,
        request_timeout=_env_float("CM360_REQUEST_TIMEOUT", default=5.0),
        max_pages=_env_int("CM360_MAX_PAGES", default=10),
        max_retries=_env_int("CM360_MAX_RETRIES", default=0),
        backoff_base=_env_float("CM360_BACKOFF_BASE", default=1.5),
        token_safety_margin=_env_int("TOKEN_SAFETY_MARGIN", default=60),
        report_poll_attempts=_env_int("REPORT_POLL_ATTEMPTS", default=6),
        report_poll_interval=_env_float("REPORT_POLL_INTERVAL", default=5.0),
        app_env=_env_any("APP_ENV", "NODE_ENV", default="production"),
        host=_env_any("HOST", default="127.0.0.1"),
        port=_env_int("PORT", default=3000),
        log_level=_env_any("LOG_LEVEL", default="INFO"),
        log_file=_env_any("LOG_FILE"),
    )


def load_service_account_info(path: str | Path) -> Dict[str, Any]:
    """Lê o JSON da service account uma única vez; o conteúdo é injetado no provedor de token."""
    p = Path(path).expanduser()
    if not p.exists():
        raise RuntimeError(f"Arquivo de credenciais não encontrado: {p}")
    with p.open("r", encoding="utf-8") as f:
        info = json.load(f)
    if not isinstance(info, dict) or "client_email" not in info or "private_key" not in info:
        raise RuntimeError(f"Arquivo de credenciais inválido (esperado JSON de service account): {p}")
    return info


def assert_config(settings: Settings) -> None:
    _warn_missing("CM360_PROFILE_ID", settings.profile_id)
    if not settings.profile_id:
        raise RuntimeError("Config incompleta: defina CM360_PROFILE_ID no .env")

    if not (settings.credentials_path or settings.access_token):
        _warn_missing("GOOGLE_APPLICATION_CREDENTIALS", settings.credentials_path)
        raise RuntimeError(
            "Config incompleta: defina GOOGLE_APPLICATION_CREDENTIALS (service account) ou CM360_ACCESS_TOKEN"
        )

    if settings.max_pages < 1:
        raise RuntimeError(f"CM360_MAX_PAGES precisa ser >= 1 (recebido {settings.max_pages})")
    if settings.request_timeout <= 0:
        raise RuntimeError(f"CM360_REQUEST_TIMEOUT precisa ser > 0 (recebido {settings.request_timeout})")

    if not settings.account_id:
        log.info("[config] CM360_ACCOUNT_ID ausente — recursos MCP exigem accountId explícito.")


def _mask(s: str | None, keep: int = 3) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return s[:keep] + "…" + f"({len(s)}c)"


def debug_print(settings: Settings, show_values: bool = False) -> None:
    print("ROOT_DIR       :", ROOT_DIR)
    print(".env path      :", DOTENV_PATH, "| exists:", DOTENV_PATH.exists())
    if show_values:
        print("PROFILE_ID     :", settings.profile_id)
        print("ACCOUNT_ID     :", settings.account_id)
        print("CREDENTIALS    :", settings.credentials_path)
        print("ACCESS_TOKEN   :", _mask(settings.access_token))
        print("ADVERTISER_ID  :", settings.default_advertiser_id)
    else:
        print("PROFILE_ID     :", bool(settings.profile_id))
        print("ACCOUNT_ID     :", bool(settings.account_id))
        print("CREDENTIALS    :", bool(settings.credentials_path))
        print("ACCESS_TOKEN   :", bool(settings.access_token))
        print("ADVERTISER_ID  :", bool(settings.default_advertiser_id))
    print("API_BASE_URL   :", settings.api_base_url)
    print("TIMEOUT (s)    :", settings.request_timeout)
    print("MAX_PAGES      :", settings.max_pages)
    print("MAX_RETRIES    :", settings.max_retries)
    print("APP_ENV        :", settings.app_env)
    print("LOG_LEVEL      :", settings.log_level)

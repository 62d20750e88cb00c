# cm360/errors.py
from __future__ import annotations

from typing import Any, Optional


class CM360Error(Exception):
    """Erro base do projeto. Cada fachada traduz `code`/`status` para o seu protocolo."""

    code = "CM360_ERROR"

    def __init__(self, message: str, *, status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def to_dict(self) -> dict:
        out = {"code": self.code, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


class AuthError(CM360Error):
    """Não foi possível obter um bearer token do provedor."""

    code = "AUTH_ERROR"


class UpstreamError(CM360Error):
    """Falha de uma chamada à API do CM360 (HTTP não-2xx, rede, timeout ou envelope inválido).

    `status` é None quando a falha aconteceu antes de existir uma resposta HTTP.
    """

    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, *, status: Optional[int] = None, body: Any = None, url: Optional[str] = None):
        super().__init__(message, status=status, details=body)
        self.body = body
        self.url = url


class ValidationError(CM360Error):
    """Parâmetros do chamador rejeitados antes de qualquer chamada de rede."""

    code = "VALIDATION_ERROR"

# cm360/resources.py
"""
Mapeamento centralizado das listagens do CM360 (relativas a /userprofiles/{profileId}).
Usado pelo service, pelas tools MCP e pelas rotas REST.
"""
from __future__ import annotations

import re
import string
from dataclasses import dataclass
from typing import Dict

from .errors import ValidationError


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    path: str
    array_field: str
    # aceita filtro advertiserIds (recebe o anunciante do contexto quando vazio)
    advertiser_scoped: bool = False


RESOURCES: Dict[str, ResourceSpec] = {
    # 🏢 Contas visíveis para o perfil
    "accounts": ResourceSpec("accounts", "/accounts", "accounts"),

    # 🔍 Anunciantes
    "advertisers": ResourceSpec("advertisers", "/advertisers", "advertisers"),

    # 📊 Campanhas / criativos / grupos / tags / posicionamentos (filtráveis por anunciante)
    "campaigns": ResourceSpec("campaigns", "/campaigns", "campaigns", advertiser_scoped=True),
    "creatives": ResourceSpec("creatives", "/creatives", "creatives", advertiser_scoped=True),
    "creativeGroups": ResourceSpec("creativeGroups", "/creativeGroups", "creativeGroups", advertiser_scoped=True),
    "eventTags": ResourceSpec("eventTags", "/eventTags", "eventTags", advertiser_scoped=True),
    "placements": ResourceSpec("placements", "/placements", "placements", advertiser_scoped=True),

    # 🔗 Associações campanha ↔ criativo
    "campaignCreativeAssociations": ResourceSpec(
        "campaignCreativeAssociations",
        "/campaigns/{campaignId}/campaignCreativeAssociations",
        "campaignCreativeAssociations",
    ),

    # 📄 Relatórios e arquivos gerados
    "reports": ResourceSpec("reports", "/reports", "items"),
    "reportFiles": ResourceSpec("reportFiles", "/reports/{reportId}/files", "items"),
}

# nomes aceitos nas rotas/CLI (kebab-case → chave do catálogo)
ALIASES: Dict[str, str] = {
    "creative-groups": "creativeGroups",
    "event-tags": "eventTags",
    "campaign-creative-associations": "campaignCreativeAssociations",
    "report-files": "reportFiles",
}

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_\-]+$")


def get_resource(name: str) -> ResourceSpec:
    key = ALIASES.get(name, name)
    try:
        return RESOURCES[key]
    except KeyError:
        raise ValidationError(
            f"Recurso desconhecido: {name}",
            details={"available": sorted(RESOURCES)},
        ) from None


def format_path(template: str, **kwargs) -> str:
    """Preenche o template; chaves ausentes ou com caracteres inválidos viram ValidationError."""
    keys = [f for _, f, _, _ in string.Formatter().parse(template) if f]
    missing = [k for k in keys if kwargs.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Parâmetros de caminho ausentes: {', '.join(missing)}")
    values = {}
    for k in keys:
        v = str(kwargs[k])
        if not _SAFE_SEGMENT.match(v):
            raise ValidationError(f"Valor inválido para {k}: {v!r}")
        values[k] = v
    return template.format(**values)

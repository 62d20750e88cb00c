# cm360/schemas.py
from __future__ import annotations

import json
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

M = TypeVar("M", bound=BaseModel)


# ---------------------------
# Listagens
# ---------------------------
class _PagedArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    maxResults: Optional[int] = Field(default=None, ge=1, le=1000)
    pageToken: Optional[str] = None


class _SearchArgs(_PagedArgs):
    searchString: str = ""


class ListAccountsArgs(_SearchArgs):
    pass


class ListAdvertisersArgs(_SearchArgs):
    pass


class ListCampaignsArgs(_SearchArgs):
    advertiserIds: List[int] = Field(default_factory=list)


class _CampaignFilteredArgs(ListCampaignsArgs):
    campaignIds: List[int] = Field(default_factory=list)


class ListCreativesArgs(_CampaignFilteredArgs):
    pass


class ListCreativeGroupsArgs(_CampaignFilteredArgs):
    pass


class ListEventTagsArgs(_CampaignFilteredArgs):
    pass


class ListPlacementsArgs(_CampaignFilteredArgs):
    pass


class ListAssociationsArgs(_PagedArgs):
    campaignId: int


class ListReportsArgs(_PagedArgs):
    pass


class ListReportFilesArgs(_PagedArgs):
    reportId: int


ARGS_BY_RESOURCE: Dict[str, Type[_PagedArgs]] = {
    "accounts": ListAccountsArgs,
    "advertisers": ListAdvertisersArgs,
    "campaigns": ListCampaignsArgs,
    "creatives": ListCreativesArgs,
    "creativeGroups": ListCreativeGroupsArgs,
    "eventTags": ListEventTagsArgs,
    "placements": ListPlacementsArgs,
    "campaignCreativeAssociations": ListAssociationsArgs,
    "reports": ListReportsArgs,
    "reportFiles": ListReportFilesArgs,
}

# campos que vão no caminho (não na query)
PATH_FIELDS = {"campaignId", "reportId"}


# ---------------------------
# Relatórios
# ---------------------------
class CampaignPerformanceArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    campaignId: int
    startDate: date
    endDate: date

    @model_validator(mode="after")
    def _check_range(self):
        if self.endDate < self.startDate:
            raise ValueError("endDate precisa ser igual ou posterior a startDate")
        return self


# ---------------------------
# Helpers
# ---------------------------
def parse_args(model: Type[M], raw: Optional[Mapping[str, Any]]) -> M:
    """Valida os argumentos do chamador; falha com ValidationError antes de qualquer chamada de rede."""
    try:
        return model.model_validate(dict(raw or {}))
    except PydanticValidationError as e:
        details = json.loads(e.json(include_url=False))
        fields = ", ".join(".".join(str(p) for p in d.get("loc", ())) or "-" for d in details)
        raise ValidationError(f"Parâmetros inválidos: {fields}", details=details) from e


def to_query(args: BaseModel) -> Dict[str, Any]:
    """Filtros para a query string: sem cursor, sem campos de caminho, sem vazios."""
    out: Dict[str, Any] = {}
    for k, v in args.model_dump(exclude_none=True).items():
        if k == "pageToken" or k in PATH_FIELDS:
            continue
        if v == "" or v == []:
            continue
        out[k] = v
    return out

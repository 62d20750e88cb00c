"""Unit tests for the resource catalog and argument schemas."""

import json
from datetime import date

import pytest

from cm360.errors import ValidationError
from cm360.resources import RESOURCES, format_path, get_resource
from cm360.schemas import (
    CampaignPerformanceArgs,
    ListAssociationsArgs,
    ListCampaignsArgs,
    ListCreativesArgs,
    parse_args,
    to_query,
)


class TestCatalog:
    def test_kebab_case_alias(self):
        assert get_resource("creative-groups").name == "creativeGroups"
        assert get_resource("campaign-creative-associations") is RESOURCES["campaignCreativeAssociations"]

    def test_unknown_resource_lists_available(self):
        with pytest.raises(ValidationError) as exc:
            get_resource("orders")
        assert "campaigns" in exc.value.details["available"]

    def test_reports_use_items_field(self):
        assert get_resource("reports").array_field == "items"
        assert get_resource("reportFiles").array_field == "items"

    def test_advertiser_scoped_flags(self):
        scoped = {name for name, spec in RESOURCES.items() if spec.advertiser_scoped}
        assert scoped == {"campaigns", "creatives", "creativeGroups", "eventTags", "placements"}


class TestFormatPath:
    def test_fills_template(self):
        assert format_path("/campaigns/{campaignId}/x", campaignId=42) == "/campaigns/42/x"

    def test_missing_key(self):
        with pytest.raises(ValidationError, match="campaignId"):
            format_path("/campaigns/{campaignId}/x")

    @pytest.mark.parametrize("bad", ["../etc", "a b", "1?x=2", "1/2"])
    def test_rejects_unsafe_segments(self, bad):
        with pytest.raises(ValidationError):
            format_path("/reports/{reportId}", reportId=bad)


class TestParseArgs:
    def test_defaults(self):
        args = parse_args(ListCampaignsArgs, None)
        assert args.searchString == ""
        assert args.advertiserIds == []
        assert args.maxResults is None

    def test_coerces_numeric_strings(self):
        args = parse_args(ListCreativesArgs, {"maxResults": "50", "campaignIds": ["7", "8"]})
        assert args.maxResults == 50
        assert args.campaignIds == [7, 8]

    @pytest.mark.parametrize("value", [0, 1001, "abc"])
    def test_max_results_bounds(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_args(ListCampaignsArgs, {"maxResults": value})
        assert exc.value.details[0]["loc"] == ["maxResults"]

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError, match="foo"):
            parse_args(ListCampaignsArgs, {"foo": 1})

    def test_campaign_id_required_for_associations(self):
        with pytest.raises(ValidationError, match="campaignId"):
            parse_args(ListAssociationsArgs, {})

    def test_performance_dates(self):
        args = parse_args(CampaignPerformanceArgs, {"campaignId": "9", "startDate": "2024-01-01", "endDate": "2024-01-31"})
        assert args.startDate == date(2024, 1, 1)
        assert args.campaignId == 9

    def test_performance_end_before_start(self):
        with pytest.raises(ValidationError) as exc:
            parse_args(CampaignPerformanceArgs, {"campaignId": 1, "startDate": "2024-02-01", "endDate": "2024-01-01"})
        assert "endDate" in exc.value.details[0]["msg"]

    def test_details_are_json_safe(self):
        with pytest.raises(ValidationError) as exc:
            parse_args(CampaignPerformanceArgs, {"campaignId": 1, "startDate": "2024-02-01", "endDate": "2024-01-01"})
        json.dumps(exc.value.details)


def test_to_query_drops_cursor_path_fields_and_empties():
    args = parse_args(ListAssociationsArgs, {"campaignId": 5, "maxResults": 10, "pageToken": "c"})
    assert to_query(args) == {"maxResults": 10}

    args = parse_args(ListCampaignsArgs, {"searchString": "", "advertiserIds": []})
    assert to_query(args) == {}

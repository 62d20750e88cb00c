"""Unit tests for the REST facade (FastAPI TestClient over a stubbed upstream)."""

from dataclasses import replace

import httpx
import pytest
from fastapi.testclient import TestClient

from cm360.errors import AuthError, CM360Error, UpstreamError, ValidationError
from cm360.rest_api import create_app, status_for
from tests.fakes import FakeProvider, RouteUpstream


@pytest.fixture
def build_api(make_service, settings):
    def _build(routes, *, token_provider=None, **overrides):
        upstream = RouteUpstream(routes)
        service = make_service(upstream, token_provider=token_provider, **overrides)
        app = create_app(service=service, settings=replace(settings, **overrides))
        return TestClient(app, raise_server_exceptions=False), upstream

    return _build


class TestEnvelope:
    def test_health(self, build_api):
        client, _ = build_api({})

        resp = client.get("/api/v1/health")

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["data"]["status"] == "ok"

    def test_unknown_route_is_404_envelope(self, build_api):
        client, _ = build_api({})

        resp = client.get("/nope")

        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": {"code": "NOT_FOUND", "message": "Rota não encontrada: GET /nope"},
        }

    def test_unlisted_resource_is_404(self, build_api):
        client, upstream = build_api({})

        resp = client.get("/api/v1/orders")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"
        assert upstream.requests == []


class TestListings:
    def test_single_page_with_cursor(self, build_api):
        client, upstream = build_api({"GET /campaigns": {"campaigns": [{"id": "1"}], "nextPageToken": "n"}})

        resp = client.get("/api/v1/campaigns", params={"searchString": "spring", "maxResults": "10"})

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "data": {"campaigns": [{"id": "1"}], "nextPageToken": "n"}}
        params = upstream.requests[0].url.params
        assert params["maxResults"] == "10"
        assert params["searchString"] == "spring"

    def test_advertiser_header_sets_context(self, build_api):
        client, upstream = build_api({"GET /placements": {"placements": []}})

        client.get("/api/v1/placements", headers={"X-Advertiser-Id": "77"})

        assert upstream.requests[0].url.params.get_list("advertiserIds") == ["77"]

    def test_comma_separated_ids(self, build_api):
        client, upstream = build_api({"GET /creatives": {"creatives": []}})

        client.get("/api/v1/creatives", params={"advertiserIds": "1,2", "campaignIds": ["3", "4"]})

        params = upstream.requests[0].url.params
        assert params.get_list("advertiserIds") == ["1", "2"]
        assert params.get_list("campaignIds") == ["3", "4"]

    def test_kebab_case_resource(self, build_api):
        client, _ = build_api({"GET /eventTags": {"eventTags": [{"id": 1}]}})

        resp = client.get("/api/v1/event-tags")

        assert resp.json()["data"]["eventTags"] == [{"id": 1}]

    def test_all_aggregates(self, build_api):
        client, upstream = build_api({
            "GET /advertisers": [
                {"advertisers": [{"id": 1}], "nextPageToken": "a"},
                {"advertisers": [{"id": 2}], "nextPageToken": "b"},
                {"advertisers": [{"id": 3}]},
            ]
        })

        resp = client.get("/api/v1/advertisers", params={"all": "true", "maxPages": "2"})

        assert resp.json()["data"] == {"advertisers": [{"id": 1}, {"id": 2}]}
        assert len(upstream.requests) == 2

    def test_max_pages_is_capped_by_settings(self, build_api):
        # cursor chain that never ends: the last envelope repeats forever
        client, upstream = build_api(
            {"GET /campaigns": [{"campaigns": [{"id": 1}], "nextPageToken": "again"}]},
            max_pages=3,
        )

        resp = client.get("/api/v1/campaigns", params={"all": "true", "maxPages": "50"})

        assert resp.status_code == 200
        assert len(resp.json()["data"]["campaigns"]) == 3
        assert len(upstream.requests) == 3

    def test_zero_max_pages_is_400(self, build_api):
        client, upstream = build_api({})

        resp = client.get("/api/v1/advertisers", params={"all": "true", "maxPages": "0"})

        assert resp.status_code == 400
        assert upstream.requests == []

    def test_accounts_list(self, build_api):
        client, _ = build_api({"GET /accounts": {"accounts": [{"id": "999"}]}})

        assert client.get("/api/v1/accounts").json()["data"]["accounts"] == [{"id": "999"}]

    def test_creative_associations(self, build_api):
        client, _ = build_api({
            "GET /campaigns/9/campaignCreativeAssociations": {"campaignCreativeAssociations": [{"creativeId": "1"}]}
        })

        resp = client.get("/api/v1/campaigns/9/creative-associations")

        assert resp.json()["data"]["campaignCreativeAssociations"] == [{"creativeId": "1"}]


class TestErrors:
    def test_bad_max_results_is_400(self, build_api):
        client, upstream = build_api({})

        resp = client.get("/api/v1/campaigns", params={"maxResults": "0"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"][0]["loc"] == ["maxResults"]
        assert upstream.requests == []

    def test_bad_advertiser_header_is_400(self, build_api):
        client, _ = build_api({})

        resp = client.get("/api/v1/campaigns", headers={"X-Advertiser-Id": "abc"})

        assert resp.status_code == 400

    def test_bad_all_flag_is_400(self, build_api):
        client, _ = build_api({})

        assert client.get("/api/v1/campaigns", params={"all": "maybe"}).status_code == 400

    def test_upstream_404_maps_to_404(self, build_api):
        client, _ = build_api({})

        resp = client.get("/api/v1/campaigns/1")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "UPSTREAM_ERROR"

    def test_upstream_500_maps_to_502(self, build_api):
        client, _ = build_api({"GET /reports/1": httpx.Response(500, json={"error": {"message": "x"}})})

        resp = client.get("/api/v1/reports/1")

        assert resp.status_code == 502
        assert resp.json()["error"]["details"] == {"error": {"message": "x"}}

    def test_auth_failure_is_503(self, build_api):
        client, _ = build_api({}, token_provider=FakeProvider(error=RuntimeError("no key")))

        resp = client.get("/api/v1/advertisers")

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "AUTH_ERROR"

    def test_unexpected_error_is_500(self, build_api, monkeypatch):
        client, _ = build_api({})
        service = client.app.state.service

        async def boom(*args, **kwargs):
            raise RuntimeError("kaput")

        monkeypatch.setattr(service, "get_report", boom)

        resp = client.get("/api/v1/reports/1")

        assert resp.status_code == 500
        assert resp.json()["error"] == {"code": "INTERNAL_SERVER_ERROR", "message": "kaput"}

    def test_development_adds_traceback(self, build_api, monkeypatch):
        client, _ = build_api({}, app_env="development")

        async def boom(*args, **kwargs):
            raise RuntimeError("kaput")

        monkeypatch.setattr(client.app.state.service, "get_report", boom)

        details = client.get("/api/v1/reports/1").json()["error"]["details"]

        assert any("RuntimeError" in line for line in details)


class TestReports:
    def test_list_and_get(self, build_api):
        client, _ = build_api({
            "GET /reports": {"items": [{"id": "1"}]},
            "GET /reports/1": {"id": "1", "name": "r"},
        })

        assert client.get("/api/v1/reports").json()["data"]["items"] == [{"id": "1"}]
        assert client.get("/api/v1/reports/1").json()["data"]["name"] == "r"

    def test_run_is_202(self, build_api):
        client, _ = build_api({"POST /reports/1/run": {"id": "f1", "status": "PROCESSING"}})

        resp = client.post("/api/v1/reports/1/run")

        assert resp.status_code == 202
        assert resp.json()["data"]["id"] == "f1"

    def test_files(self, build_api):
        client, _ = build_api({
            "GET /reports/1/files": {"items": [{"id": "f1"}]},
            "GET /reports/1/files/f1": {"id": "f1", "status": "REPORT_AVAILABLE"},
            "GET /reports/1/files/f1?alt=media": "Report Fields\nDate,Clicks\n2024-01-01,3\nGrand Total:,3\n",
        })

        assert client.get("/api/v1/reports/1/files").json()["data"]["items"] == [{"id": "f1"}]
        assert client.get("/api/v1/reports/1/files/f1").json()["data"]["status"] == "REPORT_AVAILABLE"
        data = client.get("/api/v1/reports/1/files/f1/data").json()["data"]
        assert data == {"rows": [{"Date": "2024-01-01", "Clicks": 3}], "count": 1}

    def test_files_all_honours_max_pages(self, build_api):
        client, upstream = build_api({
            "GET /reports/1/files": [
                {"items": [{"id": "f1"}], "nextPageToken": "a"},
                {"items": [{"id": "f2"}], "nextPageToken": "b"},
                {"items": [{"id": "f3"}]},
            ]
        })

        resp = client.get("/api/v1/reports/1/files", params={"all": "true", "maxPages": "2"})

        assert resp.json()["data"] == {"items": [{"id": "f1"}, {"id": "f2"}]}
        assert len(upstream.requests) == 2

    def test_performance_processing_is_202(self, build_api):
        client, _ = build_api({
            "POST /reports": {"id": "55"},
            "POST /reports/55/run": {"id": "66", "status": "PROCESSING"},
            "GET /reports/55/files/66": {"id": "66", "status": "PROCESSING"},
        })

        resp = client.get(
            "/api/v1/campaigns/9/performance", params={"startDate": "2024-01-01", "endDate": "2024-01-31"}
        )

        assert resp.status_code == 202
        assert resp.json()["data"]["status"] == "processing"

    def test_performance_requires_dates(self, build_api):
        client, upstream = build_api({})

        resp = client.get("/api/v1/campaigns/9/performance")

        assert resp.status_code == 400
        assert upstream.requests == []


@pytest.mark.parametrize(
    "error,status",
    [
        (ValidationError("x"), 400),
        (AuthError("x"), 503),
        (UpstreamError("x", status=404), 404),
        (UpstreamError("x", status=500), 502),
        (UpstreamError("x"), 502),
        (CM360Error("x"), 500),
    ],
)
def test_status_mapping(error, status):
    assert status_for(error) == status

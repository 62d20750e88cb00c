# main.py
import argparse
import asyncio
import json
import logging
import sys

from cm360.auth import CredentialCache, build_token_provider
from cm360.config import _mask, assert_config, debug_print, load_settings
from cm360.logging_setup import setup_logging
from cm360.services import RequestContext, build_service

log = logging.getLogger("cm360.cli")


def _print(data, as_json: bool):
    if as_json:
        print(json.dumps(data, ensure_ascii=False, default=str))
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# ---------------------------
# Subcomandos
# ---------------------------
async def _token(settings, refresh: bool):
    cache = CredentialCache(build_token_provider(settings), safety_margin=settings.token_safety_margin)
    cred = await cache.get_token()
    if refresh:
        cache.invalidate()
        cred = await cache.get_token()
    return {
        "ok": True,
        "access_token": _mask(cred.token, keep=6),
        "expires_at": cred.expires_at.isoformat(),
        "refreshes": cache.refresh_count,
    }


async def _list(settings, args):
    service = build_service(settings)
    try:
        raw = {}
        if args.search:
            raw["searchString"] = args.search
        if args.page_token:
            raw["pageToken"] = args.page_token
        if args.max_results:
            raw["maxResults"] = args.max_results
        if args.advertiser_id:
            raw["advertiserIds"] = args.advertiser_id
        if args.campaign_id is not None:
            raw["campaignId"] = args.campaign_id
        context = RequestContext(advertiser_id=settings.default_advertiser_id)
        return await service.list_resource(
            args.resource, raw, context, all_pages=args.all, max_pages=args.max_pages
        )
    finally:
        await service.aclose()


def main():
    parser = argparse.ArgumentParser(description="CM360 (Campaign Manager 360) — MCP / API / CLI")
    parser.add_argument("--json", action="store_true", help="Saída em JSON compacto (para automação)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log de debug")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("mcp", help="Sobe o servidor MCP em stdio")

    p_api = sub.add_parser("api", help="Sobe a API REST (uvicorn)")
    p_api.add_argument("--host", default=None)
    p_api.add_argument("--port", type=int, default=None)

    p_token = sub.add_parser("token", help="Mostra o status do access token")
    p_token.add_argument("--refresh", action="store_true", help="Força um novo token após o primeiro")

    p_list = sub.add_parser("list", help="Lista um recurso (advertisers, campaigns, creatives, …)")
    p_list.add_argument("resource")
    p_list.add_argument("--all", action="store_true", help="Agrega todas as páginas (até --max-pages)")
    p_list.add_argument("--page-token", default=None)
    p_list.add_argument("--search", default=None)
    p_list.add_argument("--max-results", type=int, default=None)
    p_list.add_argument("--max-pages", type=int, default=None)
    p_list.add_argument("--advertiser-id", type=int, nargs="+", default=None)
    p_list.add_argument("--campaign-id", type=int, default=None, help="Para campaign-creative-associations")

    p_cfg = sub.add_parser("config", help="Mostra a configuração carregada")
    p_cfg.add_argument("--show-values", action="store_true", help="Exibe valores (mascarados)")

    args = parser.parse_args()

    settings = load_settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level, settings.log_file)

    try:
        if args.command == "config":
            debug_print(settings, show_values=args.show_values)
            return 0

        assert_config(settings)

        if args.command == "mcp":
            from cm360.mcp_server import serve_stdio

            asyncio.run(serve_stdio(settings))
            return 0

        if args.command == "api":
            import uvicorn

            from cm360.rest_api import create_app

            uvicorn.run(
                create_app(settings=settings),
                host=args.host or settings.host,
                port=args.port or settings.port,
                log_level="debug" if args.verbose else "info",
            )
            return 0

        if args.command == "token":
            out = asyncio.run(_token(settings, args.refresh))
            if args.json:
                _print(out, True)
            else:
                print("🔑 Access token ativo:", out["access_token"])
                print("⏰ Expira em:", out["expires_at"])
            return 0

        if args.command == "list":
            _print(asyncio.run(_list(settings, args)), args.json)
            return 0

        return 1

    except KeyboardInterrupt:
        return 130
    except Exception as e:
        log.error("❌ Erro: %s", e)
        if args.json:
            print(json.dumps({"ok": False, "error": str(e)}))
        return 1


if __name__ == "__main__":
    sys.exit(main())

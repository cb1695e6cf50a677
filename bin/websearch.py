#!/usr/bin/env python3
"""WebSearch assistant server.

Flask server that forwards search queries to Gemini with Google Search
grounding enabled, renders the reply to HTML, and returns the cited web
sources.  Conversations stay in memory so follow-up questions keep context.

Usage:
    export GOOGLE_API_KEY="..."
    python bin/websearch.py [--debug] [--url-prefix /api]

Endpoints:
    GET  /search?q=...        new conversation
    POST /follow-up           {"sessionId": "...", "query": "..."}
    GET  /health              liveness + live session count
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from flask import Flask, request as flask_request, jsonify

# Ensure bin/ is on the path so sibling modules are importable
sys.path.insert(0, str(Path(__file__).resolve().parent))

import config as config_mod
from config import (
    Config,
    load_config,
    parse_args,
    require_api_key,
)
from errors import ConfigError, RouteNotFoundError, UpstreamError, WebSearchError
from gemini import GeminiClient
from response import process_follow_up, process_search
from sessions import SessionStore


def _error_body(exc: WebSearchError) -> dict:
    if isinstance(exc, UpstreamError):
        return {"message": "An error occurred", "error": exc.message}
    if isinstance(exc, RouteNotFoundError):
        return {"error": exc.message}
    return {"message": exc.message}


# ---------------------------------------------------------------------------
# Flask app factory
# ---------------------------------------------------------------------------
def create_app(cfg: Config, client: Any = None, store: SessionStore | None = None) -> Flask:
    """Create the Flask app.

    *client* defaults to a GeminiClient built from *cfg* (which refuses to
    start without an API key); *store* defaults to a fresh SessionStore
    sized from *cfg*.
    """
    app = Flask(__name__, static_folder=None)
    url_prefix = cfg.url_prefix
    if client is None:
        client = GeminiClient(cfg)
    if store is None:
        store = SessionStore(max_sessions=cfg.max_sessions, ttl_s=cfg.session_ttl_s)
    app.config["WEBSEARCH_CLIENT"] = client
    app.config["WEBSEARCH_STORE"] = store

    @app.before_request
    def log_request():
        print(f"[WebSearch] {flask_request.method} {flask_request.path}")

    # CORS
    @app.after_request
    def add_cors_headers(response):
        origin = flask_request.headers.get("Origin", "")
        if origin and origin in cfg.allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return response

    @app.route(url_prefix + "/health", methods=["GET"])
    def health():
        """Simple liveness endpoint for local health checks."""
        return jsonify({"ok": True, "sessions": len(store)})

    @app.route(url_prefix + "/search", methods=["GET"])
    def search():
        """Start a new grounded conversation for ?q=."""
        try:
            payload = process_search(client, store, flask_request.args.get("q"))
            return jsonify(payload), 200
        except WebSearchError as exc:
            print(f"[WebSearch] Error in search endpoint: {exc.message}")
            return jsonify(_error_body(exc)), exc.status_code
        except Exception as exc:
            print(f"[WebSearch] Error in search endpoint: {exc}")
            return jsonify({"message": "An error occurred", "error": str(exc)}), 500

    @app.route(url_prefix + "/follow-up", methods=["POST", "OPTIONS"])
    def follow_up():
        """Continue the conversation named by body.sessionId."""
        if flask_request.method == "OPTIONS":
            return ("", 204)
        body = flask_request.get_json(force=True, silent=True) or {}
        try:
            payload = process_follow_up(store, body)
            return jsonify(payload), 200
        except WebSearchError as exc:
            print(f"[WebSearch] Error in follow-up endpoint: {exc.message}")
            return jsonify(_error_body(exc)), exc.status_code
        except Exception as exc:
            print(f"[WebSearch] Error in follow-up endpoint: {exc}")
            return jsonify({"message": "An error occurred", "error": str(exc)}), 500

    # Unknown paths and wrong methods on known paths answer alike.
    @app.errorhandler(404)
    @app.errorhandler(405)
    def route_not_found(_exc):
        return jsonify(_error_body(RouteNotFoundError("API endpoint not found"))), 404

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main(argv: list | None = None) -> int:
    """Entrypoint: load config, refuse to start without credentials, serve."""
    args = parse_args(argv)
    config_mod.DEBUG_MODE = args.debug
    try:
        cfg = load_config()
        if args.host:
            cfg.bind_host = args.host
        if args.port:
            cfg.bind_port = args.port
        if args.url_prefix is not None:
            cfg.url_prefix = args.url_prefix.strip().rstrip("/")
        require_api_key(cfg)
    except ConfigError as exc:
        print(f"[WebSearch] Configuration error: {exc}", file=sys.stderr)
        return 2

    print(f"\n{'='*60}")
    print(f"  WebSearch Assistant")
    print(f"{'='*60}")
    print(f"  Bind       : {cfg.bind_host}:{cfg.bind_port}")
    print(f"  Model      : {cfg.model}")
    print(f"  API key    : {'ok' if cfg.google_api_key else 'NO KEY'}")
    print(f"  Sessions   : max={cfg.max_sessions}, ttl={cfg.session_ttl_s:g}s")
    print(f"  Timeout    : {cfg.timeout_s:g}s")
    if cfg.url_prefix:
        print(f"  URL prefix : {cfg.url_prefix}")
    print(f"  Config YAML: {config_mod._CONFIG_YAML_STATUS}")
    print(f"  Debug      : {'ON' if config_mod.DEBUG_MODE else 'off'}")
    print(f"  Search     : http://{cfg.bind_host}:{cfg.bind_port}{cfg.url_prefix}/search?q=")
    print(f"{'='*60}\n")

    app = create_app(cfg)
    app.run(host=cfg.bind_host, port=cfg.bind_port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

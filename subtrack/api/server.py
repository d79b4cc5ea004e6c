"""Telegram Mini App auth API server."""

from __future__ import annotations

import json
from typing import Any

from aiohttp import web

from logger import info_domain, log_event, setup_logging
from subtrack.api.middleware import INIT_DATA_HEADER, cors_middleware, request_context_middleware
from subtrack.auth.init_data import Diagnostics, InitDataFailure, verify_init_data
from subtrack.config import Config, load_config

AUTH_ROUTE = "/api/auth/telegram"

FAILURE_STATUS: dict[InitDataFailure, int] = {
    InitDataFailure.MALFORMED_REQUEST_BODY: 400,
    InitDataFailure.MISSING_PAYLOAD: 400,
    InitDataFailure.MISSING_USER_FIELD: 400,
    InitDataFailure.MALFORMED_USER_FIELD: 400,
    InitDataFailure.MISSING_SIGNATURE: 401,
    InitDataFailure.SIGNATURE_MISMATCH: 401,
    InitDataFailure.STALE_AUTH_DATE: 401,
    InitDataFailure.MISSING_SECRET_CONFIG: 500,
}


def _failure_response(failure: InitDataFailure, diagnostics: Diagnostics) -> web.Response:
    status = FAILURE_STATUS[failure]
    body: dict[str, Any] = {"error": failure.value}
    if status == 401:
        body["debug"] = diagnostics.as_dict()

    if status >= 500:
        log_event("ERROR", __name__, "Bot token is not configured", stage="AUTH_CONFIG")
    else:
        log_event(
            "WARNING",
            __name__,
            "initData rejected",
            stage="AUTH_REJECTED",
            extra={"failure": failure.value, **diagnostics.as_dict()},
        )
    return web.json_response(body, status=status)


async def _read_init_data(request: web.Request) -> tuple[Any, bool]:
    """Return ``(init_data, body_ok)``; the header is used when the body has none."""

    body: Any = {}
    try:
        raw = await request.text()
        if raw.strip():
            body = json.loads(raw)
    except (ValueError, LookupError):
        # LookupError: unknown charset in Content-Type.
        return None, False
    if not isinstance(body, dict):
        return None, False
    init_data = body.get("initData")
    if init_data is None:
        header = request.headers.get(INIT_DATA_HEADER)
        init_data = header.strip() if header else None
    return init_data, True


async def handle_auth(request: web.Request) -> web.Response:
    init_data, body_ok = await _read_init_data(request)
    if not body_ok:
        return _failure_response(InitDataFailure.MALFORMED_REQUEST_BODY, Diagnostics())

    config: Config = request.app["config"]
    result = verify_init_data(
        init_data,
        config.bot_token,
        max_age=config.init_data_max_age_sec,
    )
    if result.failure is not None:
        return _failure_response(result.failure, result.diagnostics)
    user = result.user
    if user is None:
        return _failure_response(InitDataFailure.MISSING_USER_FIELD, result.diagnostics)

    info_domain(
        __name__,
        "initData verified",
        stage="AUTH_OK",
        user_id=user.user_id,
        path=result.diagnostics.path,
    )
    return web.json_response(user.as_dict())


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app(config: Config | None = None) -> web.Application:
    config = config or load_config()
    app = web.Application(middlewares=[request_context_middleware, cors_middleware])
    app["config"] = config
    app.router.add_route("POST", AUTH_ROUTE, handle_auth)
    app.router.add_route("OPTIONS", AUTH_ROUTE, handle_auth)
    app.router.add_route("GET", "/healthz", handle_health)
    return app


def main() -> None:
    setup_logging()
    config = load_config()
    if not config.bot_token:
        log_event(
            "WARNING",
            __name__,
            "TELEGRAM_BOT_TOKEN is not set; auth requests will fail with 500",
            stage="STARTUP",
        )
    info_domain(__name__, "Starting auth API", stage="STARTUP", host=config.api_host, port=config.api_port)
    web.run_app(create_app(config), host=config.api_host, port=config.api_port, print=None)


if __name__ == "__main__":
    main()

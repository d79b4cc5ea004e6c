#!/usr/bin/env python3
"""Utility CLI for the SubTrack Telegram auth service."""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, urlencode

import requests
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent
ENV_FILE = PROJECT_ROOT / ".env"

TOKEN_RE = re.compile(r"^\d+:[A-Za-z0-9_-]{10,}$")
DEFAULT_WEBAPP_VERSION = "7.4"


@dataclass(slots=True)
class CheckResult:
    """Single diagnostic result entry."""

    title: str
    message: str
    status: str  # ok | warn | fail

    @property
    def icon(self) -> str:
        return {"ok": "✅", "warn": "⚠️", "fail": "❌"}.get(self.status, "❓")

    def formatted(self) -> str:
        return f"{self.icon} {self.title}: {self.message}"


def _load_env() -> None:
    """Load .env values without overriding existing environment variables."""

    load_dotenv(ENV_FILE, override=False)


def _resolve_token(explicit: Optional[str]) -> Optional[str]:
    if explicit:
        return explicit
    from subtrack.config import load_config

    return load_config(str(ENV_FILE) if ENV_FILE.exists() else None).bot_token


def _command_run() -> int:
    from subtrack.api.server import main as server_main  # Local import keeps sign/verify light

    server_main()
    return 0


def _check_telegram(bot_token: str) -> CheckResult:
    try:
        response = requests.get(f"https://api.telegram.org/bot{bot_token}/getMe", timeout=5)
    except requests.RequestException as exc:
        return CheckResult("Telegram API", f"Не удалось проверить: {exc}", "warn")
    if response.status_code == 401:
        return CheckResult("Telegram API", "Токен отклонён (HTTP 401)", "fail")
    if response.status_code != 200:
        return CheckResult("Telegram API", f"Ответ {response.status_code}: {response.text[:120]}", "warn")
    try:
        payload = response.json()
    except ValueError as exc:  # pragma: no cover - неожиданный ответ
        return CheckResult("Telegram API", f"Неожиданный формат ответа: {exc}", "warn")
    if not payload.get("ok"):
        return CheckResult("Telegram API", f"Ответ 200, но ok={payload.get('ok')}", "warn")
    username = (payload.get("result") or {}).get("username") or "?"
    return CheckResult("Telegram API", f"getMe успешно выполнен (@{username})", "ok")


def _command_check(*, online: bool = True) -> int:
    _load_env()
    results: List[CheckResult] = []

    from subtrack.config import load_config

    try:
        config = load_config()
    except RuntimeError as exc:
        results.append(CheckResult("Конфигурация", str(exc), "fail"))
        config = None
    else:
        results.append(
            CheckResult("Конфигурация", f"API на {config.api_host}:{config.api_port}", "ok")
        )

    bot_token = config.bot_token if config else None
    if not bot_token:
        results.append(CheckResult("TELEGRAM_BOT_TOKEN", "значение не задано", "fail"))
    elif not TOKEN_RE.match(bot_token):
        results.append(CheckResult("TELEGRAM_BOT_TOKEN", "Токен выглядит некорректно", "fail"))
        bot_token = None
    else:
        results.append(CheckResult("TELEGRAM_BOT_TOKEN", "OK", "ok"))

    if config is not None:
        if config.init_data_max_age_sec:
            message = f"initData старше {config.init_data_max_age_sec} с отклоняются"
            results.append(CheckResult("INIT_DATA_MAX_AGE_SEC", message, "ok"))
        else:
            message = "проверка свежести auth_date отключена (возможен повтор запроса)"
            results.append(CheckResult("INIT_DATA_MAX_AGE_SEC", message, "warn"))

    if bot_token and online:
        results.append(_check_telegram(bot_token))

    print("\n=== Self-check отчёт ===")
    for item in results:
        print(item.formatted())

    has_fail = any(item.status == "fail" for item in results)
    has_warn = any(item.status == "warn" for item in results)
    if has_fail:
        summary = CheckResult("Итог", "обнаружены критические ошибки", "fail")
    elif has_warn:
        summary = CheckResult("Итог", "есть предупреждения, но критических ошибок нет", "warn")
    else:
        summary = CheckResult("Итог", "всё готово к запуску", "ok")
    print(summary.formatted())
    return 1 if has_fail else 0


def _command_sign(args: argparse.Namespace) -> int:
    from subtrack.auth.init_data import sign_init_data

    bot_token = _resolve_token(args.token)
    if not bot_token:
        print("TELEGRAM_BOT_TOKEN не задан", file=sys.stderr)
        return 2

    user: dict[str, object] = {"id": args.user_id}
    for key in ("username", "first_name", "last_name"):
        value = getattr(args, key)
        if value:
            user[key] = value
    fields = {
        "auth_date": str(args.auth_date if args.auth_date is not None else int(time.time())),
        "user": json.dumps(user, separators=(",", ":"), ensure_ascii=False),
    }
    if args.query_id:
        fields["query_id"] = args.query_id

    signed = sign_init_data(fields, bot_token)
    if args.wrap:
        signed = urlencode(
            {"tgWebAppData": signed, "tgWebAppVersion": DEFAULT_WEBAPP_VERSION},
            quote_via=quote,
        )
    print(signed)
    return 0


def _command_verify(args: argparse.Namespace) -> int:
    from subtrack.auth.init_data import verify_init_data
    from subtrack.auth.launch import init_data_from_launch_url

    bot_token = _resolve_token(args.token)
    init_data = init_data_from_launch_url(args.url) if args.url else args.init_data
    result = verify_init_data(init_data, bot_token, max_age=args.max_age)
    if result.user is not None and result.failure is None:
        output = {"ok": True, "user": result.user.as_dict(), "auth_date": result.auth_date}
    else:
        error = result.failure.value if result.failure is not None else None
        output = {"ok": False, "error": error, "debug": result.diagnostics.as_dict()}
    print(json.dumps(output, ensure_ascii=False))
    return 0 if result.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="SubTrack auth management CLI")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Запустить API авторизации")
    run_parser.set_defaults(func=lambda _args: _command_run())

    check_parser = subparsers.add_parser("check", help="Выполнить самопроверку окружения")
    check_parser.add_argument("--offline", action="store_true", help="Не обращаться к Telegram API")
    check_parser.set_defaults(func=lambda args: _command_check(online=not args.offline))

    sign_parser = subparsers.add_parser("sign", help="Подписать тестовый initData")
    sign_parser.add_argument("--token", default=os.getenv("TELEGRAM_BOT_TOKEN"))
    sign_parser.add_argument("--user-id", type=int, required=True)
    sign_parser.add_argument("--username")
    sign_parser.add_argument("--first-name")
    sign_parser.add_argument("--last-name")
    sign_parser.add_argument("--auth-date", type=int)
    sign_parser.add_argument("--query-id")
    sign_parser.add_argument("--wrap", action="store_true", help="Обернуть в tgWebAppData=...")
    sign_parser.set_defaults(func=_command_sign)

    verify_parser = subparsers.add_parser("verify", help="Проверить initData или ссылку запуска")
    source = verify_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--init-data")
    source.add_argument("--url", help="Ссылка запуска Mini App с tgWebAppData")
    verify_parser.add_argument("--token", default=os.getenv("TELEGRAM_BOT_TOKEN"))
    verify_parser.add_argument("--max-age", type=int, help="Максимальный возраст auth_date, с")
    verify_parser.set_defaults(func=_command_verify)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

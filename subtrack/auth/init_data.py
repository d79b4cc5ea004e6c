"""Telegram WebApp initData verification."""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping
from urllib.parse import parse_qsl, unquote, urlencode

WEB_APP_DATA_KEY = b"WebAppData"
WRAPPER_FIELD = "tgWebAppData"

_WRAPPER_PATTERN = re.compile(r"(?:^|&)tgWebAppData=([^&]*)")
_SURROGATES = re.compile(r"[\ud800-\udfff]")

# Allowed lead of auth_date over the local clock, seconds.
AUTH_DATE_CLOCK_SKEW = 60


class InitDataFailure(str, Enum):
    """Reasons a payload can be rejected."""

    MISSING_PAYLOAD = "missing_payload"
    MISSING_SECRET_CONFIG = "missing_secret_config"
    MISSING_SIGNATURE = "missing_signature"
    SIGNATURE_MISMATCH = "signature_mismatch"
    STALE_AUTH_DATE = "stale_auth_date"
    MISSING_USER_FIELD = "missing_user_field"
    MALFORMED_USER_FIELD = "malformed_user_field"
    MALFORMED_REQUEST_BODY = "malformed_request_body"


class InitDataError(ValueError):
    """Raised inside the pipeline; converted into a failed result at the boundary."""

    def __init__(self, failure: InitDataFailure) -> None:
        super().__init__(failure.value)
        self.failure = failure


@dataclass(frozen=True)
class NormalizedInitData:
    """Unwrapped query-string and the shape it arrived in."""

    init_data: str
    path: str  # wrapper | raw


@dataclass(frozen=True)
class Diagnostics:
    """Flags safe to log: never the secret or any signature."""

    path: str | None = None
    has_hash: bool = False
    has_auth_date: bool = False
    has_user: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "has_hash": self.has_hash,
            "has_auth_date": self.has_auth_date,
            "has_user": self.has_user,
        }


@dataclass(frozen=True)
class TelegramUser:
    """Authenticated Telegram identity."""

    user_id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "telegram_user_id": self.user_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }


@dataclass(frozen=True)
class VerificationResult:
    """Either a verified user or a failure kind, plus diagnostics."""

    user: TelegramUser | None = None
    failure: InitDataFailure | None = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    auth_date: int | None = None
    fields: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failure is None and self.user is not None

    @classmethod
    def failed(
        cls, failure: InitDataFailure, diagnostics: Diagnostics | None = None
    ) -> "VerificationResult":
        return cls(failure=failure, diagnostics=diagnostics or Diagnostics())


def normalize_init_data(raw: str) -> NormalizedInitData:
    """Strip a stray ``#``/``?`` and unwrap ``tgWebAppData`` when present.

    Wrapper payloads carry the real initData percent-encoded as the value of
    ``tgWebAppData``. It is decoded exactly once here; a generic query-string
    parser would split on the encoded ``&``/``=`` or decode twice.
    """

    stripped = raw[1:] if raw[:1] in ("#", "?") else raw
    if f"{WRAPPER_FIELD}=" in stripped:
        match = _WRAPPER_PATTERN.search(stripped)
        encoded = match.group(1) if match else ""
        return NormalizedInitData(init_data=unquote(encoded), path="wrapper")
    return NormalizedInitData(init_data=stripped, path="raw")


def parse_init_data(init_data: str) -> dict[str, str]:
    parsed_pairs = parse_qsl(init_data, keep_blank_values=True)
    return {key: value for key, value in parsed_pairs}


def build_data_check_string(items: Mapping[str, str]) -> str:
    return "\n".join(f"{key}={items[key]}" for key in sorted(items.keys()))


def _utf8(text: str) -> bytes:
    """Encode as UTF-8 with lone surrogates turned into U+FFFD."""

    return _SURROGATES.sub("\ufffd", text).encode("utf-8")


def derive_secret_key(bot_token: str) -> bytes:
    return hmac.new(WEB_APP_DATA_KEY, _utf8(bot_token), hashlib.sha256).digest()


def calc_signature(data_check_string: str, bot_token: str) -> str:
    secret_key = derive_secret_key(bot_token)
    return hmac.new(secret_key, _utf8(data_check_string), hashlib.sha256).hexdigest()


def signatures_match(data_check_string: str, signature: str, bot_token: str) -> bool:
    """Compare ``signature`` with the expected one in constant time.

    Malformed hex is a mismatch, not an error.
    """

    expected = bytes.fromhex(calc_signature(data_check_string, bot_token))
    try:
        received = binascii.unhexlify(signature.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError):
        return False
    if len(received) != len(expected):
        return False
    return hmac.compare_digest(received, expected)


def sign_init_data(fields: Mapping[str, str], bot_token: str) -> str:
    """Build a signed initData query-string, the way the Telegram client does."""

    payload = {key: value for key, value in fields.items() if key != "hash"}
    payload["hash"] = calc_signature(build_data_check_string(payload), bot_token)
    return urlencode(payload)


def extract_user(items: Mapping[str, str]) -> TelegramUser:
    user_raw = items.get("user")
    if user_raw is None:
        raise InitDataError(InitDataFailure.MISSING_USER_FIELD)
    try:
        user = json.loads(user_raw)
    except json.JSONDecodeError:
        raise InitDataError(InitDataFailure.MALFORMED_USER_FIELD) from None
    if not isinstance(user, dict):
        raise InitDataError(InitDataFailure.MALFORMED_USER_FIELD)
    user_id = user.get("id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise InitDataError(InitDataFailure.MALFORMED_USER_FIELD)

    def _text(name: str) -> str | None:
        value = user.get(name)
        return value if isinstance(value, str) else None

    return TelegramUser(
        user_id=user_id,
        username=_text("username"),
        first_name=_text("first_name"),
        last_name=_text("last_name"),
    )


def _parse_auth_date(items: Mapping[str, str]) -> int | None:
    raw = items.get("auth_date")
    if raw is None:
        return None
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


def verify_init_data(
    init_data: Any,
    bot_token: str | None,
    *,
    max_age: int | None = None,
    now: float | None = None,
) -> VerificationResult:
    """Validate initData signature and return the authenticated user on success.

    ``max_age`` (seconds) enables rejection of payloads whose ``auth_date`` is
    older than the window, or dated more than
    ``AUTH_DATE_CLOCK_SKEW`` seconds ahead of the clock. Without it no clock is
    consulted.
    """

    if not init_data or not isinstance(init_data, str):
        return VerificationResult.failed(InitDataFailure.MISSING_PAYLOAD)
    if not bot_token:
        return VerificationResult.failed(InitDataFailure.MISSING_SECRET_CONFIG)

    normalized = normalize_init_data(init_data)
    payload = parse_init_data(normalized.init_data)
    diagnostics = Diagnostics(
        path=normalized.path,
        has_hash="hash" in payload,
        has_auth_date="auth_date" in payload,
        has_user="user" in payload,
    )

    received_hash = payload.pop("hash", None)
    if received_hash is None:
        return VerificationResult.failed(InitDataFailure.MISSING_SIGNATURE, diagnostics)
    data_check_string = build_data_check_string(payload)
    if not signatures_match(data_check_string, received_hash, bot_token):
        return VerificationResult.failed(InitDataFailure.SIGNATURE_MISMATCH, diagnostics)

    auth_date = _parse_auth_date(payload)
    if max_age is not None:
        current = time.time() if now is None else now
        age = None if auth_date is None else current - auth_date
        if age is None or age > max_age or age < -AUTH_DATE_CLOCK_SKEW:
            return VerificationResult.failed(InitDataFailure.STALE_AUTH_DATE, diagnostics)

    try:
        user = extract_user(payload)
    except InitDataError as exc:
        return VerificationResult.failed(exc.failure, diagnostics)
    return VerificationResult(
        user=user,
        diagnostics=diagnostics,
        auth_date=auth_date,
        fields=payload,
    )

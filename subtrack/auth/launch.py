"""Locate Telegram initData inside a Mini App launch URL."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

from subtrack.auth.init_data import WRAPPER_FIELD


def _has_wrapper(component: str) -> bool:
    return WRAPPER_FIELD in parse_qs(component, keep_blank_values=True)


def init_data_from_launch_url(url: str) -> str:
    """Return the query or fragment carrying ``tgWebAppData``, or ``""``.

    The query string wins over the fragment. The component is returned still
    encoded (without its ``?``/``#``) so it can go through
    :func:`subtrack.auth.init_data.normalize_init_data` unchanged.
    """

    if not url:
        return ""
    parts = urlsplit(url.strip())
    for component in (parts.query, parts.fragment):
        if component and _has_wrapper(component):
            return component
    return ""

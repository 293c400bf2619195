# app/auth/handoff.py
"""
Cross-app session hand-off.

After login, the auth flow sends the browser to the client application that
matches the user's role, carrying the fresh access token in the URL:

    <destination>?from=auth&token=<urlencoded token>

The receiving application must read the token on first load, store it, and
immediately replace the visible URL with one that no longer carries it
(``consume_handoff_url`` does the parsing and stripping).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.auth.roles import Role
from app.core.config import Settings

logger = logging.getLogger(__name__)

FROM_PARAM = "from"
FROM_AUTH = "auth"
TOKEN_PARAM = "token"


@dataclass(frozen=True)
class HandoffParams:
    token: str | None
    from_auth: bool
    clean_url: str


class HandoffRouter:
    def __init__(self, destinations: Mapping[Role, str]) -> None:
        missing = [role.value for role in Role if not (destinations.get(role) or "").strip()]
        if missing:
            raise RuntimeError(f"No hand-off destination configured for role(s): {', '.join(missing)}")
        self._destinations = {role: destinations[role].strip() for role in Role}

    @classmethod
    def from_settings(cls, settings: Settings) -> HandoffRouter:
        return cls(
            {
                Role.JOB_SEEKER: settings.USER_APP_URL,
                Role.EMPLOYER: settings.EMPLOYER_APP_URL,
                Role.ADMIN: settings.ADMIN_APP_URL,
            }
        )

    def resolve_destination(self, role: Role | str | None) -> str | None:
        """Base URL of the app for ``role``; None (no redirect) for unknown roles."""
        parsed = role if isinstance(role, Role) else Role.parse(role)
        if parsed is None:
            logger.warning("Unknown role, no redirect: %r", role)
            return None
        return self._destinations[parsed]

    def build_handoff_url(self, role: Role | str | None, token: str) -> str | None:
        base = self.resolve_destination(role)
        if base is None:
            return None
        url = append_query(base, [(FROM_PARAM, FROM_AUTH), (TOKEN_PARAM, token)])
        logger.info("Built hand-off URL: %s", redact_handoff_url(url))
        return url


def append_query(url: str, params: list[tuple[str, str]]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def consume_handoff_url(url: str) -> HandoffParams:
    """
    Receiving side of the hand-off: pull the token out of the URL and return
    the URL the application must show instead (``token`` and ``from`` removed,
    every other parameter kept).
    """
    parts = urlsplit(url)
    token: str | None = None
    from_auth = False
    kept: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key == TOKEN_PARAM:
            token = value or None
        elif key == FROM_PARAM and value == FROM_AUTH:
            from_auth = True
        else:
            kept.append((key, value))

    clean_url = urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))
    return HandoffParams(token=token, from_auth=from_auth, clean_url=clean_url)


def redact_handoff_url(url: str) -> str:
    """Same URL with the token value replaced, for logs."""
    parts = urlsplit(url)
    query = [
        (key, "[TOKEN]" if key == TOKEN_PARAM else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

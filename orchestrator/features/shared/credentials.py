from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

REDACTED = "***"


def embed_token(url: str, token: str | None) -> str:
    """Return an https clone/push URL carrying `token` as its userinfo."""
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"}:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"{token}@{host}", parts.path, parts.query, parts.fragment))


def redact(text: str, *secrets: str | None) -> str:
    cleaned = text
    for secret in secrets:
        if secret:
            cleaned = cleaned.replace(secret, REDACTED)
    return cleaned

from __future__ import annotations

_PSYCOPG_SCHEME = "postgresql+psycopg://"
_PLAIN_SCHEMES = ("postgresql://", "postgres://", "postgresql+asyncpg://")


def normalize_database_url(url: str) -> str:
    """Force the async psycopg driver whatever postgres scheme the URL was given with."""
    if url.startswith(_PSYCOPG_SCHEME):
        return url
    for scheme in _PLAIN_SCHEMES:
        if url.startswith(scheme):
            return f"{_PSYCOPG_SCHEME}{url[len(scheme):]}"
    return url

# Shared_Utils/url_helper.py
import urllib.parse

from Shared_Utils.runtime_env import default_db_host

ASYNC_DRIVER = "postgresql+asyncpg://"
SQLITE_DRIVER = "sqlite+aiosqlite://"


def normalize_driver(url: str) -> str:
    # Ensure an async driver; preserve path/query/fragment
    if url.startswith("sqlite"):
        if url.startswith(SQLITE_DRIVER):
            return url
        return SQLITE_DRIVER + url.split("://", 1)[1]
    if url.startswith("postgres://"):
        return url.replace("postgres://", ASYNC_DRIVER, 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", ASYNC_DRIVER, 1)
    if not url.startswith(ASYNC_DRIVER):
        return ASYNC_DRIVER + url.split("://", 1)[1] if "://" in url else url
    return url


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def percent_encode(s: str) -> str:
    # Encode username/password safely
    return urllib.parse.quote_plus(s or "")


def build_async_url(database_url=None, host=None, port=None, name=None, user=None, password=None) -> str:
    """
    Precedence:
      1) database_url (DATABASE_URL, normalized to an async driver)
      2) the DB_* pieces, each falling back to a local default
    """
    if database_url:
        return normalize_driver(database_url)

    host = host or default_db_host()
    port = port or "5432"
    name = name or "cost_basis_db"
    user = percent_encode(user or "cost_basis_user")
    pwd  = percent_encode(password or "")

    return f"{ASYNC_DRIVER}{user}:{pwd}@{host}:{port}/{name}"

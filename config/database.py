"""Record store URL assembly for deployments that configure DB_* components."""
from urllib.parse import quote_plus


def get_database_url(
    driver: str,
    host: str | None,
    port: int,
    user: str | None,
    password: str | None,
    name: str | None,
) -> str | None:
    """
    Build the record store URL, or None when the deployment names no host.

    No host means no remote store: the service then runs in cache-only mode.
    Credentials are URL-encoded so passwords may contain '@', ':' or '/'.

        >>> get_database_url("postgresql+asyncpg", "db", 5432, "ledger", "p@ss", "assets")
        'postgresql+asyncpg://ledger:p%40ss@db:5432/assets'
    """
    if not host:
        return None
    credentials = ""
    if user:
        credentials = quote_plus(user)
        if password:
            credentials += ":" + quote_plus(password)
        credentials += "@"
    return f"{driver}://{credentials}{host}:{port}/{name or ''}"

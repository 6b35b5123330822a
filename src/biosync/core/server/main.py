"""BioSync entry points: ``biosync-server`` and ``biosync-rotate-keys``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from biosync.core.config.settings import Settings, get_settings
from biosync.core.server.app import create_app
from biosync.core.storage.database import StoreDatabase
from biosync.core.storage.encryption import RecordCipher
from biosync.core.storage.store import KeyValueStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.biosync_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Serve the daily plan engine over Streamable HTTP (loopback only by default)."""
    settings = get_settings()
    _configure_logging(settings)

    if not settings.biosync_allow_insecure_bind and not _is_loopback_host(settings.biosync_host):
        raise RuntimeError(
            "Refusing to bind BioSync server to a non-loopback host without an auth layer. "
            "Set BIOSYNC_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting BioSync daily plan server on %s:%d (planner=%s, locale=%s)",
        settings.biosync_host,
        settings.biosync_port,
        settings.llm_provider,
        settings.planner_locale,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.biosync_host,
        port=settings.biosync_port,
    )


def rotate_keys() -> int:
    """Re-seal every stored record under the first key in ``ENCRYPTION_KEY``.

    Put the new key first and keep the old one after it, run this, then drop
    the old key.

    Returns:
        Number of records re-sealed.
    """
    settings = get_settings()
    _configure_logging(settings)
    if not settings.encryption_key:
        raise RuntimeError("ENCRYPTION_KEY is not set; nothing to rotate")

    with StoreDatabase(settings.db_path) as database:
        store = KeyValueStore(database, RecordCipher(settings.encryption_key))
        count = store.rotate_all()
    logger.info("Re-sealed %d records in %s", count, settings.db_path)
    return count


if __name__ == "__main__":
    run()

"""
Async Supabase helpers for the key/value storage table.

The table holds one row per storage key:
    key text primary key, value text not null, updated_at timestamptz
"""

from datetime import datetime, timezone

import structlog
from supabase._async.client import AsyncClient as AsyncSupabaseClient

logger = structlog.get_logger(__name__)


async def get_storage_value(
    client: AsyncSupabaseClient, table: str, key: str
) -> str | None:
    """Fetch the value stored under `key`. Returns None if not found."""
    response = (
        await client.table(table)
        .select("value")
        .eq("key", key)
        .limit(1)
        .execute()
    )
    rows = response.data or []
    return rows[0]["value"] if rows else None


async def upsert_storage_value(
    client: AsyncSupabaseClient, table: str, key: str, value: str
) -> None:
    """Insert or replace the row for `key`. Always sets updated_at."""
    await (
        client.table(table)
        .upsert(
            {
                "key": key,
                "value": value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            on_conflict="key",
        )
        .execute()
    )


async def delete_storage_value(
    client: AsyncSupabaseClient, table: str, key: str
) -> None:
    """Delete the row for `key`, if any."""
    await client.table(table).delete().eq("key", key).execute()
    logger.debug("storage_value_deleted", table=table, key=key)

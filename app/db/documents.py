"""Database operations for documents.

Every query is scoped by ``user_id`` in addition to the table's RLS
policies, so a caller can never read or mutate another user's row.
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID

from supabase import Client

from app.core.schemas_documents import DEFAULT_DOCUMENT_TITLE, Document


async def create_document(
    client: Client,
    user_id: UUID,
    title: str = DEFAULT_DOCUMENT_TITLE,
    content: str = "",
) -> Document:
    """Create a document owned by ``user_id``."""
    row = {
        "user_id": str(user_id),
        "title": title.strip() or DEFAULT_DOCUMENT_TITLE,
        "content": content,
    }
    result = client.table("documents").insert(row).execute()
    return Document(**result.data[0])


async def get_document(client: Client, user_id: UUID, document_id: UUID) -> Optional[Document]:
    """Get a document if it exists and belongs to ``user_id``."""
    result = (
        client.table("documents")
        .select("*")
        .eq("id", str(document_id))
        .eq("user_id", str(user_id))
        .execute()
    )
    if result.data:
        return Document(**result.data[0])
    return None


async def update_document(
    client: Client,
    user_id: UUID,
    document_id: UUID,
    title: str,
    content: str,
) -> Optional[Document]:
    """Overwrite title and content. Returns None when the caller does not own the row."""
    result = (
        client.table("documents")
        .update({
            "title": title,
            "content": content,
            "updated_at": datetime.now(UTC).isoformat(),
        })
        .eq("id", str(document_id))
        .eq("user_id", str(user_id))
        .execute()
    )
    if result.data:
        return Document(**result.data[0])
    return None


async def delete_document(client: Client, user_id: UUID, document_id: UUID) -> bool:
    """Hard delete. Returns whether a row was removed; deleting twice is not an error."""
    result = (
        client.table("documents")
        .delete()
        .eq("id", str(document_id))
        .eq("user_id", str(user_id))
        .execute()
    )
    return len(result.data or []) > 0


async def list_documents(
    client: Client,
    user_id: UUID,
    limit: int = 100,
    offset: int = 0,
) -> list[Document]:
    """List the caller's documents, newest first."""
    result = (
        client.table("documents")
        .select("*")
        .eq("user_id", str(user_id))
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    return [Document(**row) for row in result.data]


async def count_documents(client: Client, user_id: UUID) -> int:
    """Count the caller's documents."""
    result = (
        client.table("documents")
        .select("id", count="exact")
        .eq("user_id", str(user_id))
        .execute()
    )
    if result.count is not None:
        return result.count
    return len(result.data or [])

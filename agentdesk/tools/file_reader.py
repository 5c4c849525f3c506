"""File reader tool — returns the stored content of a user-uploaded file.

Uploads are parsed and stored by the dashboard; this tool only reads the
stored text back through the request's backing-store client, which the
chat runtime passes in ``config["configurable"]["store"]``.
"""

from __future__ import annotations

import json
import logging

from langchain_core.runnables import RunnableConfig
from langchain_core.tools import tool

from agentdesk.errors import BackingStoreError
from agentdesk.tools import register

logger = logging.getLogger(__name__)


@register
@tool
async def file_reader(storageId: str, config: RunnableConfig) -> str:  # noqa: N803
    """Read content from files uploaded by the user.

    Args:
        storageId: The unique storage ID of the file to read, exactly as
            listed in the user's files (format: file-timestamp-filename).

    Returns:
        JSON with the file's content, mimeType, fileName and metadata, or
        an error message.
    """
    configurable = config.get("configurable", {})
    store = configurable.get("store")
    if store is None:
        return "Error: no file storage is available for this conversation."

    try:
        file = await store.get_file_by_storage_id(
            storageId,
            user_id=configurable.get("user_id"),
            organization_id=configurable.get("organization_id"),
        )
    except BackingStoreError as e:
        logger.warning(f"file_reader failed for {storageId!r}: {e}")
        return f"File reading failed: {e}"

    if not file:
        return f"File reading failed: file not found with storageId: {storageId}"

    logger.info(f"file_reader retrieved {file.get('name')!r}")
    return json.dumps(
        {
            "content": file.get("content") or "No content available",
            "mimeType": file.get("type") or "text/plain",
            "fileName": file.get("name"),
            "metadata": file.get("metadata") or {},
        },
        indent=2,
    )

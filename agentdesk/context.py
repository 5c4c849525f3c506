"""User context — company/user profile and uploaded files for an agent prompt.

Fetched from the backing store per request, trimmed to a token budget and
rendered as a USER CONTEXT section appended to the agent's system prompt.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentdesk.errors import BackingStoreError
from agentdesk.store import BackingStoreClient

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
TOKENS_PER_FILE = 50
TRUNCATION_MARKER = "... [truncated]"

# Least important first.
_TRUNCATION_ORDER = [
    "company_additional_context",
    "user_additional_context",
    "company_long_term_goals",
    "company_short_term_goals",
    "user_long_term_goals",
    "user_short_term_goals",
    "targeted_audience",
]

_TEXT_FIELDS = [
    "company_name",
    "targeted_audience",
    "company_short_term_goals",
    "company_long_term_goals",
    "company_additional_context",
    "user_full_name",
    "user_short_term_goals",
    "user_long_term_goals",
    "user_additional_context",
]


class ContextFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: str = ""
    size: int = 0
    storage_id: str = Field(alias="storageId")
    uploaded_at: int = Field(default=0, alias="uploadedAt")
    content: str | None = None
    metadata: dict[str, Any] | None = None


class UserContext(BaseModel):
    """Profile data the dashboard collected for one user in one organization."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    organization_id: str = Field(alias="organizationId")
    company_name: str = Field(default="", alias="companyName")
    targeted_audience: str = Field(default="", alias="targetedAudience")
    company_short_term_goals: str = Field(default="", alias="companyShortTermGoals")
    company_long_term_goals: str = Field(default="", alias="companyLongTermGoals")
    company_additional_context: str = Field(default="", alias="companyAdditionalContext")
    user_full_name: str = Field(default="", alias="userFullName")
    user_short_term_goals: str = Field(default="", alias="userShortTermGoals")
    user_long_term_goals: str = Field(default="", alias="userLongTermGoals")
    user_additional_context: str = Field(default="", alias="userAdditionalContext")
    files: list[ContextFile] = []


async def fetch_user_context(
    store: BackingStoreClient, user_id: str, organization_id: str
) -> UserContext | None:
    """Load the caller's context. Returns None when unavailable.

    Failures are logged and swallowed; the conversation continues without
    personalisation.
    """
    try:
        user_data = await store.get_user_data(user_id, organization_id)
        if not user_data:
            logger.warning(
                f"No user data found for user={user_id} org={organization_id}"
            )
            return None
        files = await store.get_user_files(user_id, organization_id)
        context = UserContext.model_validate({**user_data, "files": files})
    except (BackingStoreError, ValidationError) as e:
        logger.error(f"Error fetching user context: {e}")
        return None

    logger.info(f"User context loaded ({len(context.files)} files)")
    return context


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def optimize_user_context(context: UserContext, max_tokens: int = 4000) -> UserContext:
    """Return a copy of ``context`` that fits roughly within ``max_tokens``.

    Free-text fields may use up to 70% of the budget; longer ones are cut in
    a fixed order, least important first. Files are then limited to the most
    recently uploaded ones that fit the remaining budget.
    """
    optimized = context.model_copy(deep=True)
    text_budget = max_tokens * 0.7

    total = sum(estimate_tokens(getattr(optimized, f)) for f in _TEXT_FIELDS)

    if total > text_budget:
        for field in _TRUNCATION_ORDER:
            if total <= text_budget:
                break
            text = getattr(optimized, field)
            if len(text) <= 100:
                continue
            current = estimate_tokens(text)
            to_remove = min(current - 50, total - text_budget)  # keep at least 50 tokens
            if to_remove <= 0:
                continue
            keep = max(100, len(text) - int(to_remove * CHARS_PER_TOKEN))
            truncated = text[:keep] + TRUNCATION_MARKER
            setattr(optimized, field, truncated)
            total -= current - estimate_tokens(truncated)

    if optimized.files:
        max_files = math.floor((max_tokens - total) / TOKENS_PER_FILE)
        if 0 < max_files < len(optimized.files):
            optimized.files = sorted(
                optimized.files, key=lambda f: f.uploaded_at, reverse=True
            )[:max_files]

    return optimized


def render_user_context(context: UserContext) -> str:
    """Render the USER CONTEXT section appended to a system prompt."""
    lines = ["USER CONTEXT:"]

    company = [
        ("Company", context.company_name),
        ("Target Audience", context.targeted_audience),
        ("Short-term Goals", context.company_short_term_goals),
        ("Long-term Goals", context.company_long_term_goals),
        ("Additional Context", context.company_additional_context),
    ]
    if any(value for _, value in company):
        lines.append("Company Information:")
        lines.extend(f"- {label}: {value}" for label, value in company if value)

    user = [
        ("Name", context.user_full_name),
        ("Short-term Goals", context.user_short_term_goals),
        ("Long-term Goals", context.user_long_term_goals),
        ("Additional Context", context.user_additional_context),
    ]
    if any(value for _, value in user):
        lines.append("")
        lines.append("User Information:")
        lines.extend(f"- {label}: {value}" for label, value in user if value)

    if context.files:
        lines.append("")
        lines.append("Available Files:")
        for i, f in enumerate(context.files, 1):
            meta = f.metadata or {}
            entry = f"{i}. {f.name} ({f.type})"
            if meta.get("title") and meta["title"] != f.name:
                entry += f" - Title: {meta['title']}"
            if meta.get("pageCount"):
                entry += f" - {meta['pageCount']} pages"
            if meta.get("author"):
                entry += f" - Author: {meta['author']}"
            lines.append(entry)
            lines.append(f"   StorageId: {f.storage_id}")
            if f.content:
                lines.append("   Content available via file_reader tool")
        lines.append("")
        lines.append("Use file_reader tool with exact storageId to access files.")

    return "\n".join(lines)

"""Info extractor tool — pulls targeted information out of a web page.

Backed by a hosted scraping workflow reached over HTTP.
Requires: INFO_EXTRACTOR_ENDPOINT, INFO_EXTRACTOR_API_KEY and
INFO_EXTRACTOR_PROJECT environment variables.
"""

from __future__ import annotations

import json
import logging
import os

import httpx
from langchain_core.tools import tool

from agentdesk.tools import register

logger = logging.getLogger(__name__)

_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


@register
@tool
async def info_extractor(url: str, objectOfScrape: str) -> str:  # noqa: N803
    """Extract specific information from any website on the internet.

    Args:
        url: The URL of the website to extract information from.
        objectOfScrape: What specific information you want to extract from
            the website.

    Returns:
        The extraction result as pretty-printed JSON, or an error message.
    """
    endpoint = os.environ.get("INFO_EXTRACTOR_ENDPOINT", "")
    api_key = os.environ.get("INFO_EXTRACTOR_API_KEY", "")
    if not endpoint or not api_key:
        return "Error: INFO_EXTRACTOR_ENDPOINT / INFO_EXTRACTOR_API_KEY are not set."

    payload = {
        "params": {"url": url, "object_of_scrape": objectOfScrape},
        "project": os.environ.get("INFO_EXTRACTOR_PROJECT", ""),
    }

    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
            resp = await client.post(
                endpoint,
                json=payload,
                headers={"Authorization": api_key},
            )
        resp.raise_for_status()
        result = resp.json()
    except httpx.HTTPStatusError as e:
        logger.warning(f"info_extractor got {e.response.status_code} for {url!r}")
        return (
            f"Info extraction failed: API responded with status "
            f"{e.response.status_code}: {e.response.text}"
        )
    except httpx.HTTPError as e:
        logger.warning(f"info_extractor request failed for {url!r}: {e}")
        return f"Info extraction failed: {e}"
    except ValueError:
        return f"Info extraction failed: could not parse API response: {resp.text}"

    return json.dumps(result, indent=2)

"""
Per-request upstream clients.

Each provider builds a client from settings, yields it to the route and
closes it afterwards. Tests replace them with app.dependency_overrides.
"""

import logging
from typing import AsyncIterator

from fastapi import HTTPException, status

from rankpilot.analyzer import ChatAssistant, ChatNotConfiguredError
from rankpilot.collector import DataForSEOClient
from rankpilot.integrations import GSCClient
from rankpilot.outreach import WebhookClient
from rankpilot.pages import PageAnalyzer
from rankpilot.utils.config import get_settings

logger = logging.getLogger(__name__)


async def get_dataforseo_client() -> AsyncIterator[DataForSEOClient]:
    settings = get_settings()
    if not settings.dataforseo_configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="DataForSEO credentials not configured",
        )

    client = DataForSEOClient.from_settings(settings)
    try:
        yield client
    finally:
        await client.close()


async def get_gsc_client() -> AsyncIterator[GSCClient]:
    settings = get_settings()
    if not settings.gsc_configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Google Search Console is not configured",
        )

    client = GSCClient.from_settings(settings)
    try:
        yield client
    finally:
        await client.close()


async def get_webhook_client() -> AsyncIterator[WebhookClient]:
    client = WebhookClient.from_settings(get_settings())
    try:
        yield client
    finally:
        await client.close()


async def get_page_analyzer() -> AsyncIterator[PageAnalyzer]:
    analyzer = PageAnalyzer.from_settings(get_settings())
    try:
        yield analyzer
    finally:
        await analyzer.close()


def get_chat_assistant() -> ChatAssistant:
    try:
        return ChatAssistant.from_settings(get_settings())
    except ChatNotConfiguredError as e:
        logger.error("ANTHROPIC_API_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )


def upstream_error(service: str, error: Exception) -> HTTPException:
    """502 for a failed upstream call, with the upstream message as details."""
    logger.error(f"{service} request failed: {error}")
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"error": f"{service} request failed", "details": str(error)},
    )

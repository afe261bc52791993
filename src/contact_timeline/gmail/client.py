"""Gmail API client implementation.

This module provides a client for interacting with the Gmail API.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from contact_timeline.config import Settings
from contact_timeline.exceptions import AuthenticationError, ConfigurationError, GmailAPIError

logger = structlog.get_logger()

_MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class MessageListPage:
    """One page of message stubs (``id`` + ``threadId``) from ``messages.list``."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    next_page_token: str | None = None
    result_size_estimate: int | None = None


class GmailClient:
    """Gmail API client for message retrieval.

    This client handles authentication and paged message listing.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from contact_timeline.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = None
        logger.info("gmail_client_initialized")

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the credentials file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if not credentials_path.exists():
            raise ConfigurationError(f"Gmail credentials file not found: {credentials_path}.")

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scope,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def list_message_page(
        self,
        query: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> MessageListPage:
        """List a single page of messages.

        Args:
            query: Gmail search query string.
            page_token: Token returned by the previous page, if any.
            max_results: Page size (capped at 500 by the API).

        Returns:
            The page of message stubs and the token of the next page.

        Raises:
            GmailAPIError: If the API request fails.
        """

        await self._ensure_authenticated()

        per_page = min(max_results or self.settings.gmail_max_results, _MAX_PAGE_SIZE)
        logger.info("listing_message_page", query=query, max_results=per_page, has_token=page_token is not None)

        try:
            response = await asyncio.to_thread(self._list_page_sync, query, page_token, per_page)
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_list_messages_failed", error=str(exc))
            raise GmailAPIError(str(exc)) from exc

        return MessageListPage(
            messages=response.get("messages", []) or [],
            next_page_token=response.get("nextPageToken"),
            result_size_estimate=response.get("resultSizeEstimate"),
        )

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "full",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]:
        """Get a specific message by ID.

        Args:
            message_id: The Gmail message ID.
            format: Gmail message format (``full`` includes bodies).

        Returns:
            Message data dictionary.

        Raises:
            GmailAPIError: If the API request fails.
        """

        await self._ensure_authenticated()

        logger.debug("getting_message", message_id=message_id, format=format)

        try:
            return await asyncio.to_thread(
                self._get_message_sync,
                message_id,
                format,
                metadata_headers,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_get_message_failed", message_id=message_id, error=str(exc))
            raise GmailAPIError(str(exc)) from exc

    async def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _list_page_sync(self, query: str | None, page_token: str | None, per_page: int) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .list(userId="me", maxResults=per_page, q=query, pageToken=page_token)
        )
        return request.execute()

    def _get_message_sync(
        self,
        message_id: str,
        format: str,
        metadata_headers: list[str] | None,
    ) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .get(userId="me", id=message_id, format=format, metadataHeaders=metadata_headers)
        )
        return request.execute()

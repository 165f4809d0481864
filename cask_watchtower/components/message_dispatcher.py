"""
Message dispatching components for the Cask Watchtower system.

This module delivers private alert messages through the Discord REST API
with retry logic and error handling.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..models.config import DiscordConfig
from ..models.delivery import DeliveryResult

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500


class RecipientUnreachableError(Exception):
    """The recipient cannot receive private messages (blocked, left, unknown)."""


def _truncate(message: str) -> str:
    if len(message) <= MAX_ERROR_MESSAGE_LENGTH:
        return message
    return message[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."


class BaseMessageDispatcher(ABC):
    """Base class for private message dispatchers with common retry logic."""

    def __init__(self, max_retries: int = 3, retry_delay: float = 1.0):
        """
        Initialize base dispatcher.

        Args:
            max_retries: Maximum number of retry attempts
            retry_delay: Initial delay between retries in seconds
        """
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry configuration."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "POST"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def deliver_private_message(
        self, recipient_id: str, scope_id: str, payload: Dict[str, Any]
    ) -> DeliveryResult:
        """
        Send a private message with retry logic.

        An unreachable recipient is not retried and yields a failed result
        with recipient_unreachable set.

        Args:
            recipient_id: Platform user id
            scope_id: Community the alert was created in
            payload: Platform message payload

        Returns:
            DeliveryResult: Result of delivery attempt
        """
        start_time = datetime.now()
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                logger.info(
                    f"Sending message to user {recipient_id} "
                    f"(attempt {attempt + 1}/{self.max_retries + 1})"
                )

                if self._send_message(recipient_id, scope_id, payload):
                    delivery_time = datetime.now()
                    logger.info(
                        f"Message delivered in {(delivery_time - start_time).total_seconds():.2f}s"
                    )
                    result = DeliveryResult(
                        success=True, delivery_time=delivery_time, error_message=None
                    )
                    result.validate()
                    return result

            except RecipientUnreachableError as e:
                logger.warning(f"User {recipient_id} cannot receive messages: {e}")
                result = DeliveryResult(
                    success=False,
                    delivery_time=datetime.now(),
                    error_message=_truncate(f"Recipient unreachable: {e}"),
                    recipient_unreachable=True,
                )
                result.validate()
                return result

            except Exception as e:
                last_error = str(e)
                logger.warning(f"Send attempt {attempt + 1} failed: {last_error}")

                if attempt < self.max_retries:
                    sleep_time = self.retry_delay * (2**attempt)
                    logger.info(f"Retrying in {sleep_time:.1f} seconds...")
                    time.sleep(sleep_time)

        error_msg = _truncate(
            f"Failed after {self.max_retries + 1} attempts. Last error: {last_error}"
        )
        logger.error(error_msg)

        result = DeliveryResult(
            success=False, delivery_time=datetime.now(), error_message=error_msg
        )
        result.validate()
        return result

    @abstractmethod
    def _send_message(
        self, recipient_id: str, scope_id: str, payload: Dict[str, Any]
    ) -> bool:
        """
        Platform-specific message sending implementation.

        Raises:
            RecipientUnreachableError: If the user cannot be messaged
            Exception: If sending fails for a retryable reason
        """

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the messaging platform."""


class DiscordDirectMessageDispatcher(BaseMessageDispatcher):
    """Discord bot direct message dispatcher."""

    UNREACHABLE_STATUS_CODES = (403, 404)

    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://discord.com/api/v10",
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize Discord dispatcher.

        Args:
            bot_token: Discord bot token
            api_base_url: Discord REST API root
            max_retries: Maximum number of retry attempts
            retry_delay: Initial delay between retries in seconds
        """
        super().__init__(max_retries, retry_delay)
        self.bot_token = bot_token
        self.api_base_url = api_base_url.rstrip("/")
        self.session.headers.update(
            {
                "Authorization": f"Bot {bot_token}",
                "Content-Type": "application/json",
            }
        )
        self._dm_channels: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config: DiscordConfig) -> "DiscordDirectMessageDispatcher":
        return cls(
            bot_token=config.bot_token,
            api_base_url=config.api_base_url,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )

    def _check_response(self, response: requests.Response, action: str) -> None:
        if response.status_code in self.UNREACHABLE_STATUS_CODES:
            raise RecipientUnreachableError(
                f"{action} returned {response.status_code}: {response.text[:200]}"
            )
        response.raise_for_status()

    def _open_dm_channel(self, recipient_id: str) -> str:
        """Open (or reuse) the DM channel with a user."""
        if recipient_id in self._dm_channels:
            return self._dm_channels[recipient_id]

        response = self.session.post(
            f"{self.api_base_url}/users/@me/channels",
            json={"recipient_id": recipient_id},
            timeout=30,
        )
        self._check_response(response, "Opening DM channel")

        channel_id = response.json().get("id")
        if not channel_id:
            raise ValueError("Discord API did not return a DM channel id")

        self._dm_channels[recipient_id] = channel_id
        return channel_id

    def _send_message(
        self, recipient_id: str, scope_id: str, payload: Dict[str, Any]
    ) -> bool:
        """Send a message via the Discord REST API."""
        channel_id = self._open_dm_channel(recipient_id)

        response = self.session.post(
            f"{self.api_base_url}/channels/{channel_id}/messages",
            json=payload,
            timeout=30,
        )
        if response.status_code in self.UNREACHABLE_STATUS_CODES:
            self._dm_channels.pop(recipient_id, None)
        self._check_response(response, "Sending DM")

        logger.info(f"Message sent to Discord user {recipient_id} (server {scope_id})")
        return True

    def test_connection(self) -> bool:
        """Test connection to the Discord API."""
        try:
            response = self.session.get(f"{self.api_base_url}/users/@me", timeout=10)
            response.raise_for_status()

            username = response.json().get("username", "unknown")
            logger.info(f"Discord connection test successful: logged in as {username}")
            return True

        except Exception as e:
            logger.error(f"Failed to connect to Discord: {e}")
            return False

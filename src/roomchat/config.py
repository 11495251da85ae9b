"""
Client Configuration

Configuration for the chat client is read from environment variables,
falling back to defaults suitable for a local development server.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://localhost:8080/api"
DEFAULT_WS_URL = "ws://localhost:8080/ws"
DEFAULT_MAX_CACHED_MESSAGES = 1000


@dataclass
class ClientConfig:
    """
    Settings for the REST API, the message channel and logging.

    Attributes:
        api_base_url: Base URL of the REST API (e.g., http://host:8080/api)
        ws_url: WebSocket URL of the STOMP endpoint
        topic_prefix: Broker prefix for subscription destinations
        app_prefix: Application prefix for publish destinations
        error_queue: Per-user destination for server-side errors
        log_file: File that receives client logs
        log_level: Name of the logging level
        max_cached_messages: Maximum messages kept for the active room
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    ws_url: str = DEFAULT_WS_URL
    topic_prefix: str = "/topic"
    app_prefix: str = "/app"
    error_queue: str = "/user/queue/errors"
    log_file: str = "chat_client.log"
    log_level: str = "WARNING"
    max_cached_messages: int = DEFAULT_MAX_CACHED_MESSAGES

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            ClientConfig with every unset variable at its default.
        """
        env = os.environ if environ is None else environ

        max_cached = env.get("CHAT_MAX_MESSAGES", "")
        try:
            max_cached_messages = (
                int(max_cached) if max_cached else DEFAULT_MAX_CACHED_MESSAGES
            )
        except ValueError:
            logger.warning(
                "Ignoring invalid CHAT_MAX_MESSAGES value: %s", max_cached
            )
            max_cached_messages = DEFAULT_MAX_CACHED_MESSAGES

        return cls(
            api_base_url=env.get("CHAT_API_URL", DEFAULT_API_BASE_URL).rstrip(
                "/"
            ),
            ws_url=env.get("CHAT_WS_URL", DEFAULT_WS_URL),
            topic_prefix=env.get("CHAT_TOPIC_PREFIX", "/topic").rstrip("/"),
            app_prefix=env.get("CHAT_APP_PREFIX", "/app").rstrip("/"),
            error_queue=env.get("CHAT_ERROR_QUEUE", "/user/queue/errors"),
            log_file=env.get("CHAT_LOG_FILE", "chat_client.log"),
            log_level=env.get("CHAT_LOG_LEVEL", "WARNING").upper(),
            max_cached_messages=max_cached_messages,
        )

    def room_topic(self, room_id: str) -> str:
        """Return the subscription destination for a room's events."""
        return f"{self.topic_prefix}/rooms/{room_id}"

    def publish_destination(self, room_id: str, operation: str) -> str:
        """Return the publish destination for a room operation."""
        return f"{self.app_prefix}/chat/{room_id}/{operation}"

"""
Tests for Client Configuration

Tests for reading settings from the environment and building channel
destinations.
"""

from roomchat.config import DEFAULT_MAX_CACHED_MESSAGES, ClientConfig


def test_defaults():
    """Test that an empty environment gives the local defaults."""
    config = ClientConfig.from_env({})
    assert config.api_base_url == "http://localhost:8080/api"
    assert config.ws_url == "ws://localhost:8080/ws"
    assert config.log_file == "chat_client.log"
    assert config.log_level == "WARNING"
    assert config.max_cached_messages == DEFAULT_MAX_CACHED_MESSAGES


def test_from_env_overrides():
    """Test that environment variables override the defaults."""
    config = ClientConfig.from_env(
        {
            "CHAT_API_URL": "https://chat.example/api/",
            "CHAT_WS_URL": "wss://chat.example/ws",
            "CHAT_TOPIC_PREFIX": "/broker/",
            "CHAT_LOG_LEVEL": "debug",
            "CHAT_MAX_MESSAGES": "50",
        }
    )
    assert config.api_base_url == "https://chat.example/api"
    assert config.ws_url == "wss://chat.example/ws"
    assert config.topic_prefix == "/broker"
    assert config.log_level == "DEBUG"
    assert config.max_cached_messages == 50


def test_invalid_max_messages_falls_back():
    """Test that a non-numeric cache size is ignored."""
    config = ClientConfig.from_env({"CHAT_MAX_MESSAGES": "lots"})
    assert config.max_cached_messages == DEFAULT_MAX_CACHED_MESSAGES


def test_destinations():
    """Test the subscription and publish destination conventions."""
    config = ClientConfig()
    assert config.room_topic("7") == "/topic/rooms/7"
    assert config.publish_destination("7", "sendMessage") == "/app/chat/7/sendMessage"
    assert config.error_queue == "/user/queue/errors"

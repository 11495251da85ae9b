"""
Base Schema Classes

This module provides base classes for outbound payloads and inbound
REST/channel objects with common serialization and deserialization
methods to avoid code duplication.
"""

import json
from dataclasses import asdict, fields
from typing import Any, Dict, Type, TypeVar

T = TypeVar("T", bound="BaseResponse")


class BaseRequest:
    """
    Base class for payloads published on the message channel.

    Subclasses name the channel operation they are published to and
    provide the JSON body.
    """

    def to_payload(self) -> Any:
        """
        Convert to the JSON-compatible channel body.

        Returns:
            Dictionary of the dataclass fields, keyed by their wire names.
        """
        if hasattr(self, "__dataclass_fields__") and fields(self):
            data = asdict(self)
            return {
                self._wire_names.get(key, key): value
                for key, value in data.items()
            }
        return {}

    def to_json(self) -> str:
        """
        Convert to JSON string.

        Returns:
            JSON string representation of the payload.
        """
        return json.dumps(self.to_payload())

    @property
    def operation(self) -> str:
        """
        Channel operation the payload is published to.

        Should be overridden by subclasses to provide the specific operation.
        """
        raise NotImplementedError("Subclasses must define operation")

    @property
    def _wire_names(self) -> Dict[str, str]:
        """Mapping of field names to wire names (override when they differ)."""
        return {}


class BaseResponse:
    """
    Base class for response schemas.

    Provides common deserialization methods for creating response objects
    from dictionary and JSON formats.
    """

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from dictionary.

        Args:
            data: Dictionary containing response data.

        Returns:
            Instance of the response class.
        """
        return cls._from_data(data)

    @classmethod
    def from_json(cls: Type[T], json_str: str) -> T:
        """
        Create instance from JSON string.

        Args:
            json_str: JSON string containing response data.

        Returns:
            Instance of the response class.
        """
        data = json.loads(json_str)
        return cls.from_dict(data)

    @classmethod
    def _from_data(cls: Type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from response data dictionary.

        Should be overridden by subclasses for custom deserialization.

        Args:
            data: Dictionary containing response data.

        Returns:
            Instance of the response class.
        """
        return cls(**data)

"""
Pydantic models for keystore.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ValidationError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class KeyRecord(BaseModel):
    """A stored secret: name, opaque value and creation time."""
    name: str = Field(..., min_length=1)
    value: bytes
    created: datetime = Field(default_factory=utc_now)

    def to_document(self) -> Dict[str, Any]:
        """Return the BSON document shape used by the MongoDB store."""
        return {
            "_id": self.name,
            "value": self.value,
            "created": self.created,
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "KeyRecord":
        """
        Build a record from a stored document.

        Raises:
            ValueError: If the document is missing fields or has the wrong types
        """
        value = document.get("value")
        # bson.Binary subclasses bytes; str would be silently encoded by pydantic
        if not isinstance(value, bytes):
            raise ValueError(
                f"document '{document.get('_id')}' has no binary value"
            )
        try:
            return cls(
                name=document.get("_id"),
                value=bytes(value),
                created=document.get("created"),
            )
        except ValidationError as e:
            raise ValueError(f"malformed key document: {e}") from e


class MongoDBConfig(BaseModel):
    """Connection settings for the MongoDB key store."""
    connection_string: str = Field(..., min_length=1)
    database: str = Field(..., min_length=1)
    collection: str = Field(..., min_length=1)
    connect_timeout_ms: int = Field(default=10000, ge=1)
    server_selection_timeout_ms: int = Field(default=10000, ge=1)
    ping_on_connect: bool = True
    operation_timeout: Optional[float] = Field(default=None, gt=0)

"""
Ledger Value Types

What the ledger says about a record, decoded into plain Python.

The ledger encodes "no locator" as 32 zero bytes. That sentinel never
crosses into these types - absence is None.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Permission(BaseModel):
    """
    A viewer's access grant for one record.

    Rules:
    - No grant is can_access=False, data_uri=None
    - data_uri is only meaningful when can_access is True
    """
    can_access: bool = Field(
        ...,
        description="True iff the viewer has been granted access"
    )
    data_uri: Optional[str] = Field(
        default=None,
        description="Viewer-specific locator of the (re-encrypted) ciphertext"
    )

    @field_validator("data_uri")
    @classmethod
    def locator_requires_grant(cls, v: Optional[str], info) -> Optional[str]:
        if v is not None and not info.data.get("can_access"):
            raise ValueError("data_uri must be absent when access is not granted")
        return v

    @classmethod
    def denied(cls) -> "Permission":
        """The answer for a viewer with no grant."""
        return cls(can_access=False, data_uri=None)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "can_access": True,
                "data_uri": "0xde1f76340a34698d41d362010bbc3c05c26f25d659904ef08ef7bd5eac0dbea4",
            }
        }


class RecordEntry(BaseModel):
    """
    The ledger's row for a record.

    Written once by the provider or owner; read here, never mutated.
    """
    data_hash: str = Field(
        ...,
        description="Fingerprint the record is keyed by (0x hex)"
    )
    owner: str = Field(
        ...,
        description="Account that owns the record"
    )
    metadata_hash: Optional[str] = Field(
        default=None,
        description="Fingerprint of the record's public metadata (0x hex)"
    )
    sig_count: int = Field(
        default=0,
        ge=0,
        description="Number of attestations recorded"
    )
    iris_score: int = Field(
        default=0,
        ge=0,
        description="Aggregate provenance score of the attesting accounts"
    )
    data_uri: Optional[str] = Field(
        default=None,
        description="Owner's locator of the encrypted payload"
    )
    timestamp: Optional[datetime] = Field(
        default=None,
        description="When the record was appended to the ledger (UTC)"
    )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "data_hash": "0x38d18acb67d25c8bb9942764b62f18e17054f66a817bd4295423adf9ed98873e",
                "owner": "0x627306090abab3a6e1400e9345bc60c78a8bef57",
                "metadata_hash": "0x7a4e0f1b6b8d0c0b0a19e8e6a0a1f6a6d6e2c1b0c5d4e3f2a1b0c9d8e7f6a5b4",
                "sig_count": 1,
                "iris_score": 1,
                "data_uri": "0x59742369c54039d5611d84452aa6c31b72da336b76ed4029b12c3dc5479836ba",
                "timestamp": "2018-06-01T12:00:00Z",
            }
        }

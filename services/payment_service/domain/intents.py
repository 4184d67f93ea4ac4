"""
Payment intent metadata.

Metadata is attached when an intent is created and read back from the
webhook. Each intent pays for exactly one action, so the metadata is a
tagged union discriminated on ``action``.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _IntentMetadataBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    car_id: UUID = Field(alias="carId")
    lease_id: UUID = Field(alias="leaseId")
    email: Optional[str] = None

    def to_metadata(self) -> dict[str, str]:
        """Flatten to string values, as the gateway stores them."""
        data = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        return {key: str(value) for key, value in data.items()}


class CreateLeaseIntent(_IntentMetadataBase):
    """Metadata of the intent paying for a new lease."""

    action: Literal["createLease"] = "createLease"
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")


class ExtendLeaseIntent(_IntentMetadataBase):
    """Metadata of the intent paying for a lease extension."""

    action: Literal["extendLease"] = "extendLease"
    additional_days: int = Field(alias="additionalDays", gt=0)
    new_end_date: datetime = Field(alias="newEndDate")


IntentMetadata = Annotated[
    Union[CreateLeaseIntent, ExtendLeaseIntent],
    Field(discriminator="action"),
]

_intent_metadata_adapter = TypeAdapter(IntentMetadata)


def parse_intent_metadata(metadata: dict) -> Union[CreateLeaseIntent, ExtendLeaseIntent]:
    """
    Parse gateway metadata into its intent variant.

    Raises:
        pydantic.ValidationError: If the action is unknown or fields are missing
    """
    return _intent_metadata_adapter.validate_python(metadata)

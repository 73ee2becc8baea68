"""Pydantic models for storage operation inputs and results."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class ListingOptions(BaseModel):
    """Paging, sorting, filtering and search options of a listing."""

    size: int | Literal["all"] | None = Field(
        default=None, description="Page size, 'all' to disable paging, None for the default"
    )
    page: int = Field(default=0, ge=0, description="Zero-based page number")
    sorts: dict[str, Literal["asc", "desc"]] = Field(
        default_factory=dict, description="Column -> sort direction"
    )
    filters: dict[str, str] = Field(
        default_factory=dict, description="Column -> substring to match"
    )
    search: str | None = Field(
        default=None, description="Substring matched against every filterable column"
    )

    @field_validator("size")
    @classmethod
    def validate_size(cls, value: int | str | None) -> int | str | None:
        if isinstance(value, int) and value < 1:
            raise ValueError("size must be a positive integer or 'all'")
        return value

    @field_validator("filters", mode="before")
    @classmethod
    def stringify_filters(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: str(item) for key, item in value.items() if item not in (None, "")}
        return value


class RelationshipListing(BaseModel):
    """One page of related rows.

    ``count`` is the number of related rows before filters and search,
    ``count_filtered`` the number after them and before paging.
    """

    rows: list[dict[str, Any]] = Field(default_factory=list)
    count: int = Field(ge=0, description="Total related rows")
    count_filtered: int = Field(ge=0, description="Related rows matching filters")


class DeleteResult(BaseModel):
    """Outcome of a record delete."""

    record_id: Any
    soft: bool = Field(description="Whether the record was soft deleted")
    cascaded: int = Field(default=0, ge=0, description="Child rows removed")

"""Request bodies accepted by the designer API."""

from typing import Any

from pydantic import BaseModel, Field

from pagecraft.lib.grid import GridPlacement


class PlacementIn(BaseModel):
    column: int = 1
    column_span: int = 12
    row: int = 1
    row_span: int = 1

    def to_placement(self) -> GridPlacement:
        return GridPlacement(
            column=self.column,
            column_span=self.column_span,
            row=self.row,
            row_span=self.row_span,
        )


class CreatePageIn(BaseModel):
    slug: str = Field(min_length=1, max_length=255)
    title: str = Field(min_length=1, max_length=500)
    name: str | None = None
    description: str | None = None


class AddComponentIn(BaseModel):
    type: str
    parent_key: str | None = None
    index: int | None = None
    placement: PlacementIn | None = None
    name: str | None = None
    properties: dict[str, Any] | None = None


class MoveComponentIn(BaseModel):
    parent_key: str | None = None
    index: int | None = None
    placement: PlacementIn | None = None


class ReorderIn(BaseModel):
    parent_key: str | None = None
    keys: list[str]


class SavePageIn(BaseModel):
    components: list[dict[str, Any]]
    create_version: bool = False
    change_notes: str | None = Field(default=None, max_length=1000)


class VersionIn(BaseModel):
    change_notes: str | None = Field(default=None, max_length=1000)

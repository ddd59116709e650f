from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from westock.models.inventory_item import new_item_id, now_ms


class Bundle(BaseModel):
    """
    A named, ordered list of item ids.

    References are not owning: an id may appear in several bundles and may
    point at an item that has since been deleted.
    """

    id: str
    name: str
    description: str = ""
    item_ids: List[str] = Field(default_factory=list, alias="itemIds")
    created_at: int = Field(default_factory=now_ms, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BundleCreate(BaseModel):
    id: Optional[str] = None
    name: str
    description: str = ""
    item_ids: List[str] = Field(default_factory=list, alias="itemIds")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def to_bundle(self) -> Bundle:
        return Bundle(
            id=self.id or new_item_id(),
            name=self.name,
            description=self.description,
            item_ids=list(self.item_ids),
        )


class BundleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    item_ids: Optional[List[str]] = Field(default=None, alias="itemIds")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @model_validator(mode="after")
    def reject_null_fields(self) -> "BundleUpdate":
        for field in self.model_fields_set:
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def apply_to(self, bundle: Bundle) -> Bundle:
        changes = self.model_dump(exclude_unset=True)
        return Bundle.model_validate({**bundle.model_dump(), **changes})

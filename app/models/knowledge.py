"""Pydantic views of knowledge-store rows used in prompts and tool calls."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StockRecord(BaseModel):
    """One vinyl record held in stock."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    record_title: str
    artist: str
    genre: str
    price: str
    quantity: int


class StoreRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: str
    city: str
    county: str | None = None
    phone_number: str | None = None


class CustomerRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_name: str
    address: str | None = None
    city: str | None = None
    county: str | None = None
    phone_number: str


class OrderRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    stock_item_id: int
    price: str


class StockQuery(BaseModel):
    """Arguments of the ``query_stock`` tool.

    Field names match the tool schema the model is given. Any populated field
    is enough for a record to match.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    record_title: str | None = Field(default=None, alias="RecordTitle")
    artist: str | None = Field(default=None, alias="Artist")
    genre: str | None = Field(default=None, alias="Genre")

    def populated_fields(self) -> dict[str, str]:
        """Return the non-blank filters keyed by model attribute name."""

        return {
            name: value.strip()
            for name, value in (
                ("record_title", self.record_title),
                ("artist", self.artist),
                ("genre", self.genre),
            )
            if value and value.strip()
        }

"""Prompt text for the record shop voice assistant."""

from __future__ import annotations

import json
from collections.abc import Sequence

from pydantic import BaseModel

# ruff: noqa: E501
VOICE_SYSTEM_PROMPT = """
You are a helpful assistant for a record store which sells vinyl records.

Speaking rules:
- Everything you reply with is read out loud by a voice bot, so never format responses as text.
- Always reply in plain sentences using ordinary letters. Spell numbers out in words.
- Never read out internal identifiers such as ids, partition keys or row keys.
- Keep answers short and conversational.
""".strip()

IN_STOCK_GENRES = (
    "Hip Hop",
    "Rock",
    "Indie",
    "Prog Rock",
    "Alt Rock",
    "Pop",
    "Trip Hop",
    "Folk Rock",
    "Grunge",
    "Punk",
)

MAX_RECOMMENDATIONS = 5


def _to_json(records: Sequence[BaseModel] | BaseModel) -> str:
    if isinstance(records, BaseModel):
        return records.model_dump_json()
    return json.dumps([record.model_dump(mode="json") for record in records])


def build_store_directory_prompt(stores: Sequence[BaseModel]) -> str:
    return (
        "Here is a list of shops. It tells you the name and address of each store. "
        "The id is an identifier which will be used later. "
        "Do not speak about the store information until asked. "
        f"Here is the list: {_to_json(stores)}"
    )


def build_caller_profile_prompt(customer: BaseModel) -> str:
    return (
        "Here is the information of the customer you are speaking with: "
        f"{_to_json(customer)}"
    )


def build_caller_orders_prompt(orders: Sequence[BaseModel]) -> str:
    return f"Here is the customer's order data with us: {_to_json(orders)}"


def build_caller_order_stock_prompt(stock: Sequence[BaseModel]) -> str:
    return f"Here are the stock items associated with those orders: {_to_json(stock)}"


def build_genre_list_prompt(genres: Sequence[str] = IN_STOCK_GENRES) -> str:
    return f"Here is a list of genres currently in stock: {', '.join(genres)}"


def build_stock_grounding_prompt(records: Sequence[BaseModel]) -> str:
    """System directive that grounds the next answer in looked-up stock."""

    return f"""You will be provided with an array of stock data objects in JSON format.
Use this data (or anything provided previously in this conversation) to answer the user's question.
If the answer cannot be found in the provided data, say so.
This is not everything available in our collection, only what a database search done just now returned. If the user asks for something new, the stock will need to be searched again.

Here is the stock data:
```json
{_to_json(records)}
```
Recommend {MAX_RECOMMENDATIONS} records at most and avoid repeating the same album twice.
Avoid recommending something that the customer already owns.
If there is nothing, use the provided genre list to pick a similar but different genre and suggest from that."""

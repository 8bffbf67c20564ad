from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Host type names used in output schema descriptors.
CHARARRAY = "chararray"
FLOAT = "float"
INT = "int"
MAP = "map"


class Record(BaseModel):
    """
    Base for every record flowing between pipeline stages.

    Strict: a value of the wrong type is rejected rather than coerced
    (an int item id or a "3.0" weight string is malformed input).
    """
    model_config = ConfigDict(strict=True, frozen=True, populate_by_name=True, extra="ignore")

    # Field order for positional (tuple) rows.
    POSITIONAL_FIELDS: ClassVar[Tuple[str, ...]] = ()


class InteractionSignal(Record):
    """A weighted user→item interaction, optionally with per-signal counts."""

    POSITIONAL_FIELDS: ClassVar[Tuple[str, ...]] = ("user", "item", "weight", "signal_counts")

    user: str
    item: str
    weight: float = Field(ge=0.0)
    signal_counts: Optional[Dict[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("signal_counts", "signalCounts", "signal_types"),
    )


class ItemLink(Record):
    """A directed, weighted item→item edge contributed by one user."""

    POSITIONAL_FIELDS: ClassVar[Tuple[str, ...]] = ("item_A", "item_B", "weight", "link_data")

    item_a: str = Field(alias="item_A")
    item_b: str = Field(alias="item_B")
    weight: float = Field(ge=0.0)
    link_data: Optional[Dict[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("link_data", "linkData"),
    )


class LinkTarget(Record):
    """An aggregated edge for a known item_A (the grouping key is not repeated)."""

    POSITIONAL_FIELDS: ClassVar[Tuple[str, ...]] = ("item_B", "weight", "link_data")

    item_b: str = Field(alias="item_B")
    weight: float = Field(ge=0.0)
    link_data: Optional[Dict[str, int]] = None


class CandidateRec(Record):
    """
    A candidate recommendation for a user, with its provenance.

    `diversity_adj_weight` and `rank` are unset on input and filled in by
    the refiner.
    """

    POSITIONAL_FIELDS: ClassVar[Tuple[str, ...]] = (
        "user",
        "item",
        "weight",
        "reason",
        "user_link",
        "item_link",
        "diversity_adj_weight",
        "rank",
    )

    user: str
    item: str
    weight: float = Field(ge=0.0)
    reason: Optional[str] = None
    user_link: float
    item_link: float
    diversity_adj_weight: Optional[float] = None
    rank: Optional[int] = None


@dataclass(frozen=True)
class FieldSchema:
    name: str
    dtype: str


@dataclass(frozen=True)
class BagSchema:
    """
    Output description handed to the host: a named bag of tuples.

    Informational only; nothing in the components reads it back.
    """
    name: str
    fields: Tuple[FieldSchema, ...]

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)


def bag_schema(name: str, *fields: Tuple[str, str]) -> BagSchema:
    return BagSchema(name=name, fields=tuple(FieldSchema(n, t) for n, t in fields))

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List, Optional, Type, TypeVar

import pandas as pd
from pydantic import ValidationError

from .schemas import Record

R = TypeVar("R", bound=Record)


class MalformedInputError(ValueError):
    """Raised when an input record is missing a field or holds a value of the wrong type."""


def _as_mapping(row: Any, model: Type[Record]) -> Mapping[str, Any]:
    if isinstance(row, Mapping):
        return row
    if isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
        names = model.POSITIONAL_FIELDS
        if len(row) > len(names):
            raise MalformedInputError(
                f"{model.__name__} row has {len(row)} fields, expected at most {len(names)}."
            )
        return dict(zip(names, row))
    raise MalformedInputError(
        f"{model.__name__} row must be a record, mapping or tuple, got {type(row).__name__}."
    )


def coerce_record(row: Any, model: Type[R]) -> R:
    """
    Turn one input row into a validated `model` instance.

    Accepts an instance of `model` (returned as-is), a mapping keyed by
    field name or alias, or a positional tuple in `model.POSITIONAL_FIELDS`
    order.
    """
    if isinstance(row, model):
        return row
    if isinstance(row, Record):
        row = row.model_dump(by_alias=True)
    try:
        return model.model_validate(_as_mapping(row, model))
    except ValidationError as exc:
        raise MalformedInputError(f"Malformed {model.__name__} row: {exc}") from exc


def coerce_records(
    rows: Iterable[Any],
    model: Type[R],
    logger: Optional[logging.Logger] = None,
    step_name: str = "coerce_records",
) -> List[R]:
    """
    Validate a whole batch up front.

    A single bad row aborts the batch: nothing is returned and the error
    is logged once before being raised.

    Raises:
        MalformedInputError
    """
    if rows is None:
        raise MalformedInputError(f"Expected a bag of {model.__name__} rows, got None.")

    try:
        return [coerce_record(row, model) for row in rows]
    except MalformedInputError as exc:
        if logger:
            logger.error(
                "Malformed input batch",
                extra={
                    "event": "malformed_input",
                    "step": step_name,
                    "exception_type": type(exc.__cause__ or exc).__name__,
                },
            )
        raise
    except TypeError as exc:
        raise MalformedInputError(f"Expected a bag of {model.__name__} rows: {exc}") from exc


def validate_required_columns(
    df: pd.DataFrame,
    required: Iterable[str],
    logger: Optional[logging.Logger] = None,
    step_name: str = "frame_validation",
) -> None:
    """
    Validate that a DataFrame handed to the local driver has every column
    its stage needs.

    Raises:
        MalformedInputError
    """
    missing = sorted(set(required) - set(df.columns))
    if missing:
        if logger:
            logger.error(
                "Missing required columns",
                extra={"event": "malformed_input", "step": step_name},
            )
        raise MalformedInputError(f"Missing required columns for {step_name}: {missing}")


def validate_group_keys(
    df: pd.DataFrame,
    key: str,
    logger: Optional[logging.Logger] = None,
    step_name: str = "frame_validation",
) -> None:
    """
    Validate that no row of a DataFrame has a null grouping key.

    Raises:
        MalformedInputError
    """
    null_rows = int(df[key].isna().sum())
    if null_rows:
        if logger:
            logger.error(
                "Null grouping key",
                extra={"event": "malformed_input", "step": step_name, "num_records": null_rows},
            )
        raise MalformedInputError(f"{null_rows} row(s) with null {key!r} for {step_name}")

import logging

import pandas as pd
import pytest

from recsys.schemas import CandidateRec, InteractionSignal, ItemLink
from recsys.validators import (
    MalformedInputError,
    coerce_record,
    coerce_records,
    validate_group_keys,
    validate_required_columns,
)


def test_coerce_record_from_tuple_mapping_and_instance():
    from_tuple = coerce_record(("u1", "a", 1.5), InteractionSignal)
    from_mapping = coerce_record({"user": "u1", "item": "a", "weight": 1.5}, InteractionSignal)

    assert from_tuple == from_mapping
    assert coerce_record(from_tuple, InteractionSignal) is from_tuple


def test_aliases_are_accepted():
    link = coerce_record({"item_A": "a", "item_B": "b", "weight": 1.0, "linkData": {"view": 1}}, ItemLink)
    signal = coerce_record({"user": "u", "item": "a", "weight": 1.0, "signalCounts": {"buy": 2}}, InteractionSignal)

    assert (link.item_a, link.item_b, link.link_data) == ("a", "b", {"view": 1})
    assert signal.signal_counts == {"buy": 2}


def test_extra_fields_are_ignored():
    rec = coerce_record({"user": "u", "item": "a", "weight": 1.0, "source": "etl"}, InteractionSignal)

    assert rec.item == "a"


@pytest.mark.parametrize(
    "row",
    [
        ("u1", "a"),
        ("u1", "a", 1.0, None, "extra"),
        ("u1", "a", "1.0"),
        ("u1", None, 1.0),
        ("u1", "a", -0.5),
        ("u1", "a", 1.0, {"view": "many"}),
        42,
    ],
)
def test_malformed_rows_raise(row):
    with pytest.raises(MalformedInputError):
        coerce_record(row, InteractionSignal)


def test_pydantic_error_is_chained():
    with pytest.raises(MalformedInputError) as info:
        coerce_record(("u1", "a", "1.0"), InteractionSignal)

    assert info.value.__cause__ is not None


def test_record_of_another_type_is_revalidated():
    signal = InteractionSignal(user="u1", item="a", weight=1.0)

    with pytest.raises(MalformedInputError):
        coerce_record(signal, CandidateRec)


def test_coerce_records_logs_once_and_raises(caplog):
    logger = logging.getLogger("recsys.test_validators")

    with caplog.at_level(logging.ERROR), pytest.raises(MalformedInputError):
        coerce_records([("u1", "a", 1.0), ("u1", "b", "x")], InteractionSignal, logger=logger, step_name="unit")

    errors = [r for r in caplog.records if r.name == "recsys.test_validators"]
    assert len(errors) == 1
    assert errors[0].event == "malformed_input"
    assert errors[0].step == "unit"
    assert errors[0].exception_type == "ValidationError"


@pytest.mark.parametrize("rows", [None, 5])
def test_coerce_records_rejects_non_bags(rows):
    with pytest.raises(MalformedInputError):
        coerce_records(rows, InteractionSignal)


def test_records_are_frozen():
    rec = coerce_record(("u1", "a", 1.0), InteractionSignal)

    with pytest.raises(Exception):
        rec.weight = 2.0


def test_validate_required_columns():
    df = pd.DataFrame([{"user": "u1", "item": "a"}])

    validate_required_columns(df, ("user", "item"))
    with pytest.raises(MalformedInputError, match="weight"):
        validate_required_columns(df, ("user", "item", "weight"), step_name="unit")


def test_validate_group_keys_rejects_null_keys(caplog):
    df = pd.DataFrame([{"user": "u1", "item": "a"}, {"user": None, "item": "b"}])
    logger = logging.getLogger("recsys.validators_test")

    validate_group_keys(df, "item")
    with caplog.at_level(logging.ERROR, logger="recsys.validators_test"):
        with pytest.raises(MalformedInputError, match="'user'"):
            validate_group_keys(df, "user", logger=logger, step_name="unit")

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].event == "malformed_input"
    assert errors[0].num_records == 1

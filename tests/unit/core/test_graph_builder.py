from unittest.mock import MagicMock

import pytest

from recsys.core.graph_builder import ItemItemGraphBuilder
from recsys.schemas import InteractionSignal, ItemLink
from recsys.validators import MalformedInputError


def _edges(links):
    return {(l.item_a, l.item_b): l for l in links}


def test_three_items_produce_six_min_weight_links():
    builder = ItemItemGraphBuilder()
    links = builder.evaluate([("u1", "a", 3.0), ("u1", "b", 5.0), ("u1", "c", 1.0)])

    assert len(links) == 6
    assert {(l.item_a, l.item_b, l.weight) for l in links} == {
        ("a", "b", 3.0),
        ("b", "a", 3.0),
        ("a", "c", 1.0),
        ("c", "a", 1.0),
        ("b", "c", 1.0),
        ("c", "b", 1.0),
    }
    assert all(l.link_data is None for l in links)


def test_links_are_symmetric_with_equal_link_data():
    builder = ItemItemGraphBuilder(detailed=True)
    signals = [
        {"user": "u1", "item": "a", "weight": 2.0, "signal_counts": {"view": 3}},
        {"user": "u1", "item": "b", "weight": 4.0, "signal_counts": {"view": 1, "buy": 1}},
        {"user": "u1", "item": "c", "weight": 0.5, "signal_counts": {}},
    ]
    edges = _edges(builder.evaluate(signals))

    for (a, b), link in edges.items():
        mirror = edges[(b, a)]
        assert mirror.weight == link.weight
        assert mirror.link_data == link.link_data
        assert mirror.link_data is not link.link_data


def test_detailed_mode_sums_signal_counts_and_counts_one_user():
    builder = ItemItemGraphBuilder(detailed=True)
    signals = [
        {"user": "u1", "item": "a", "weight": 2.0, "signal_counts": {"view": 3, "NUM_USERS": 7}},
        {"user": "u1", "item": "b", "weight": 4.0, "signal_counts": {"view": 1, "buy": 2}},
    ]
    edges = _edges(builder.evaluate(signals))

    assert edges[("a", "b")].link_data == {"view": 4, "buy": 2, "NUM_USERS": 1}
    assert edges[("a", "b")].weight == 2.0
    # inputs are left untouched
    assert signals[0]["signal_counts"] == {"view": 3, "NUM_USERS": 7}


def test_detailed_mode_requires_signal_counts():
    builder = ItemItemGraphBuilder(detailed=True)

    with pytest.raises(MalformedInputError):
        builder.evaluate([("u1", "a", 1.0, {"view": 1}), ("u1", "b", 1.0)])


def test_duplicate_item_for_user_is_not_deduplicated():
    builder = ItemItemGraphBuilder()
    links = builder.evaluate([("u1", "a", 1.0), ("u1", "a", 2.0)])

    assert [(l.item_a, l.item_b, l.weight) for l in links] == [("a", "a", 1.0), ("a", "a", 1.0)]


@pytest.mark.parametrize("signals", [[], [("u1", "a", 1.0)]])
def test_fewer_than_two_items_produce_no_links(signals):
    assert ItemItemGraphBuilder().evaluate(signals) == []


def test_link_count_is_quadratic():
    signals = [("u1", f"i{n}", float(n)) for n in range(6)]
    links = ItemItemGraphBuilder().evaluate(signals)

    assert len(links) == 6 * 5


def test_accepts_record_instances_and_returns_item_links():
    signals = [InteractionSignal(user="u1", item="a", weight=1.0), InteractionSignal(user="u1", item="b", weight=2.0)]
    links = ItemItemGraphBuilder().evaluate(signals)

    assert all(isinstance(l, ItemLink) for l in links)
    assert links[0].model_dump(by_alias=True) == {"item_A": "a", "item_B": "b", "weight": 1.0, "link_data": None}


def test_progress_reported_per_item_and_on_completion():
    reporter = MagicMock()
    builder = ItemItemGraphBuilder(reporter=reporter)

    builder.evaluate([("u1", "a", 1.0), ("u1", "b", 1.0), ("u1", "c", 1.0)])

    assert reporter.progress.call_count == 4


def test_progress_reported_for_empty_bag():
    reporter = MagicMock()
    ItemItemGraphBuilder(reporter=reporter).evaluate([])

    reporter.progress.assert_called_once_with()


@pytest.mark.parametrize(
    "bad_row",
    [
        ("u1", "b", "2.0"),
        ("u1", 7, 2.0),
        ("u1", "b", -1.0),
        {"user": "u1", "item": "b"},
        "u1,b,2.0",
    ],
)
def test_malformed_record_aborts_batch(bad_row):
    reporter = MagicMock()
    builder = ItemItemGraphBuilder(reporter=reporter)

    with pytest.raises(MalformedInputError):
        builder.evaluate([("u1", "a", 1.0), bad_row])

    reporter.progress.assert_not_called()


def test_output_schema_lists_link_fields():
    assert ItemItemGraphBuilder().output_schema().field_names == ("item_A", "item_B", "weight")
    assert ItemItemGraphBuilder(detailed=True).output_schema().field_names == (
        "item_A",
        "item_B",
        "weight",
        "link_data",
    )
    assert ItemItemGraphBuilder().output_schema().name == "ii_terms"

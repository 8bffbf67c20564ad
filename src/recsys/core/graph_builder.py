from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Protocol

import numpy as np

from ..logging_utils import component_logger
from ..schemas import CHARARRAY, FLOAT, MAP, BagSchema, InteractionSignal, ItemLink, bag_schema
from ..validators import MalformedInputError, coerce_records
from .signals import merge_signal_counts


class ProgressReporter(Protocol):
    """Host-provided liveness sink. Called repeatedly; the return value is ignored."""

    def progress(self) -> Any:
        ...


class ItemItemGraphBuilder:
    """
    Builds the item-item edges contributed by a single user.

    High-level workflow:
        1. Validate the user's bag of (user, item, weight[, signal_counts]).
        2. Join the bag with itself: every pair of positions i < j yields a
           link weighted by the smaller of the two user-item weights.
        3. Emit each link in both directions.

    The pairing is quadratic in the size of the user's item set. No cap is
    applied here; limiting items per user is left to the caller.

    In detailed mode each record must carry signal counts; a pair's link
    data is the key-wise sum of both items' counts with NUM_USERS set to 1.
    """

    def __init__(
        self,
        *,
        detailed: bool = False,
        reporter: Optional[ProgressReporter] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.detailed = detailed
        self.reporter = reporter
        self.logger = component_logger("graph_builder", logger)

    def output_schema(self, input_schema: Optional[BagSchema] = None) -> BagSchema:
        fields = [("item_A", CHARARRAY), ("item_B", CHARARRAY), ("weight", FLOAT)]
        if self.detailed:
            fields.append(("link_data", MAP))
        return bag_schema("ii_terms", *fields)

    def _report_progress(self) -> None:
        if self.reporter is not None:
            self.reporter.progress()

    def evaluate(self, signals: Iterable[Any]) -> List[ItemLink]:
        """
        Return the symmetric edge set for one user's interaction bag.

        Raises:
            MalformedInputError: If any record is malformed, or if a record
                lacks signal counts in detailed mode.
        """
        records = coerce_records(signals, InteractionSignal, logger=self.logger, step_name="graph_builder")

        if self.detailed:
            missing = [r.item for r in records if r.signal_counts is None]
            if missing:
                self.logger.error(
                    "Signal counts missing in detailed mode",
                    extra={"event": "malformed_input", "step": "graph_builder"},
                )
                raise MalformedInputError(f"signal_counts required in detailed mode; missing for items {missing}")

        items = [r.item for r in records]
        weights = np.array([r.weight for r in records], dtype=np.float64)
        links: List[ItemLink] = []

        for i, u in enumerate(records):
            pair_weights = np.minimum(weights[i], weights[i + 1:])
            for offset, weight in enumerate(pair_weights.tolist(), start=i + 1):
                v = records[offset]
                link_data = None
                if self.detailed:
                    link_data = merge_signal_counts(u.signal_counts, v.signal_counts)

                links.append(ItemLink(item_A=items[i], item_B=items[offset], weight=weight, link_data=link_data))
                links.append(
                    ItemLink(
                        item_A=items[offset],
                        item_B=items[i],
                        weight=weight,
                        link_data=dict(link_data) if link_data is not None else None,
                    )
                )

            self._report_progress()

        self._report_progress()

        self.logger.debug(
            "Item-item links built for user",
            extra={
                "event": "graph_builder_done",
                "user": records[0].user if records else None,
                "num_records": len(records),
                "num_links": len(links),
            },
        )
        return links

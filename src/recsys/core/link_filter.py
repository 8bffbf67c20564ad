from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from ..config import ConfigValue, LinkFilterConfig
from ..logging_utils import component_logger
from ..schemas import CHARARRAY, FLOAT, MAP, BagSchema, ItemLink, LinkTarget, bag_schema
from ..validators import MalformedInputError, coerce_records
from .signals import add_signal_counts


class ItemLinkFilter:
    """
    Merges the duplicate links of a single item_A and drops weak ones.

    The input is every link whose source is one item_A (one group), so
    item_A is not repeated in the output: the caller already has it.

    Two usage modes share the same state and give identical results:
        - single shot: `evaluate(links)`
        - incremental: `accumulate(...)` any number of times, then
          `finalize()`, then `reset()` before reusing the instance.

    Not safe for concurrent use; the caller sequences calls per group.
    """

    def __init__(
        self,
        min_link_weight: ConfigValue,
        *,
        detailed: ConfigValue = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = LinkFilterConfig.from_args(min_link_weight, detailed)
        self.logger = component_logger("link_filter", logger)
        self.reset()

    @property
    def min_link_weight(self) -> float:
        return self.config.min_link_weight

    @property
    def detailed(self) -> bool:
        return self.config.detailed

    def output_schema(self, input_schema: Optional[BagSchema] = None) -> BagSchema:
        fields = [("item_B", CHARARRAY), ("weight", FLOAT)]
        if self.detailed:
            fields.append(("link_data", MAP))
        return bag_schema("ii_terms", *fields)

    def reset(self) -> None:
        """Drop all accumulated state."""
        self._weights: Dict[str, np.float32] = {}
        self._link_data: Dict[str, Dict[str, int]] = {}

    def accumulate(self, links: Iterable[Any]) -> None:
        """
        Add a bag (or partial bag) of links to the running sums.

        The bag is validated before any state changes, so a malformed bag
        leaves previously accumulated sums untouched.

        Raises:
            MalformedInputError
        """
        records = coerce_records(links, ItemLink, logger=self.logger, step_name="link_filter")

        if self.detailed:
            missing = [r.item_b for r in records if r.link_data is None]
            if missing:
                self.logger.error(
                    "Link data missing in detailed mode",
                    extra={"event": "malformed_input", "step": "link_filter"},
                )
                raise MalformedInputError(f"link_data required in detailed mode; missing for items {missing}")

        for r in records:
            self._weights[r.item_b] = self._weights.get(r.item_b, np.float32(0.0)) + np.float32(r.weight)
            if self.detailed:
                add_signal_counts(self._link_data.setdefault(r.item_b, {}), r.link_data)

        self.logger.debug(
            "Links accumulated",
            extra={
                "event": "link_filter_accumulate",
                "item_a": records[0].item_a if records else None,
                "num_records": len(records),
            },
        )

    def finalize(self) -> List[LinkTarget]:
        """
        Materialize one record per item_B whose summed weight is at least
        `min_link_weight`. Sums and the comparison are single precision.
        State is kept until `reset()`.
        """
        threshold = np.float32(self.min_link_weight)
        output: List[LinkTarget] = []
        for item_b, weight in self._weights.items():
            if weight < threshold:
                continue
            link_data = dict(self._link_data[item_b]) if self.detailed else None
            output.append(LinkTarget(item_B=item_b, weight=float(weight), link_data=link_data))

        self.logger.debug(
            "Links filtered",
            extra={
                "event": "link_filter_finalize",
                "num_records": len(self._weights),
                "num_links": len(output),
            },
        )
        return output

    def evaluate(self, links: Iterable[Any]) -> List[LinkTarget]:
        """Single-shot mode: accumulate the whole bag, finalize, reset."""
        try:
            self.accumulate(links)
            return self.finalize()
        finally:
            self.reset()

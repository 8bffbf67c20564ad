from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

import pandas as pd

from ..config import ConfigValue, RefinerConfig
from ..logging_utils import component_logger
from ..schemas import CHARARRAY, FLOAT, INT, BagSchema, CandidateRec, InteractionSignal, bag_schema
from ..validators import coerce_records


def _stable_rank(df: pd.DataFrame, score_col: str) -> pd.DataFrame:
    # score desc, item asc
    if df.empty:
        return df
    return df.sort_values([score_col, "item"], ascending=[False, True], kind="mergesort").reset_index(drop=True)


def _best_per_item(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep one row per item: the strictly greatest weight, and on equal
    weights the row scanned first.
    """
    ordered = df.sort_values(
        ["item", "weight", "scan_pos"],
        ascending=[True, False, True],
        kind="mergesort",
    )
    return ordered.drop_duplicates(subset="item", keep="first")


def _diversity_adjust(df: pd.DataFrame) -> pd.DataFrame:
    """
    diversity_adj_weight = weight / (reason_rank + 2), where reason_rank is
    the zero-based position of the row among rows sharing its reason,
    ordered by weight desc then item asc.

    A row without a reason forms its own group, so its reason_rank is 0.
    """
    ranked = _stable_rank(df, "weight")
    has_reason = ranked["reason"].notna()

    reason_rank = pd.Series(0, index=ranked.index, dtype="int64")
    if has_reason.any():
        reason_rank.loc[has_reason] = ranked.loc[has_reason].groupby("reason", sort=False).cumcount()

    return ranked.assign(diversity_adj_weight=ranked["weight"] / (reason_rank + 2))


class RecommendationRefiner:
    """
    Turns one user's raw candidate recommendations into the final top-N list.

    Steps:
        1. Drop candidates for items the user has already seen.
        2. Keep only the best-weighted occurrence of each item.
        3. Compute diversity_adj_weight (plain weight, or reason-discounted).
        4. Rank by diversity_adj_weight desc (item asc on ties), keep top N
           and number them from 1.
    """

    def __init__(
        self,
        num_recs: ConfigValue,
        diversity_adjust: ConfigValue = False,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = RefinerConfig.from_args(num_recs, diversity_adjust)
        self.logger = component_logger("refiner", logger)

    @property
    def num_recs(self) -> int:
        return self.config.num_recs

    @property
    def diversity_adjust(self) -> bool:
        return self.config.diversity_adjust

    def output_schema(self, input_schema: Optional[BagSchema] = None) -> BagSchema:
        return bag_schema(
            "ui_recs",
            ("user", CHARARRAY),
            ("item", CHARARRAY),
            ("weight", FLOAT),
            ("reason", CHARARRAY),
            ("user_link", FLOAT),
            ("item_link", FLOAT),
            ("diversity_adj_weight", FLOAT),
            ("rank", INT),
        )

    def evaluate(self, seen_signals: Iterable[Any], candidates: Iterable[Any]) -> List[CandidateRec]:
        """
        Refine one user's candidates.

        Args:
            seen_signals: The user's interaction bag; only `item` is used.
            candidates: Candidate recommendations for the same user,
                possibly repeating items and including seen items.

        Returns:
            At most `num_recs` CandidateRec copies with
            `diversity_adj_weight` and 1-based `rank` set.

        Raises:
            MalformedInputError: If either bag holds a malformed record.
        """
        seen_records = coerce_records(seen_signals, InteractionSignal, logger=self.logger, step_name="refiner_seen")
        cand_records = coerce_records(candidates, CandidateRec, logger=self.logger, step_name="refiner_candidates")

        seen = {r.item for r in seen_records}
        unseen_pos = [pos for pos, c in enumerate(cand_records) if c.item not in seen]

        if not unseen_pos or self.num_recs == 0:
            return []

        df = pd.DataFrame(
            {
                "scan_pos": unseen_pos,
                "item": [cand_records[p].item for p in unseen_pos],
                "weight": [cand_records[p].weight for p in unseen_pos],
                "reason": pd.Series([cand_records[p].reason for p in unseen_pos], dtype="object"),
            }
        )
        df = _best_per_item(df)

        if self.diversity_adjust:
            df = _diversity_adjust(df)
        else:
            df = df.assign(diversity_adj_weight=df["weight"])

        top = _stable_rank(df, "diversity_adj_weight").head(self.num_recs)

        refined = [
            cand_records[int(row.scan_pos)].model_copy(
                update={"diversity_adj_weight": float(row.diversity_adj_weight), "rank": rank}
            )
            for rank, row in enumerate(top.itertuples(index=False), start=1)
        ]

        self.logger.debug(
            "Recommendations refined for user",
            extra={
                "event": "refiner_done",
                "user": refined[0].user if refined else None,
                "num_records": len(cand_records),
                "num_links": len(refined),
            },
        )
        return refined

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import PipelineConfig, load_pipeline_config_from_env
from .core.graph_builder import ItemItemGraphBuilder, ProgressReporter
from .core.link_filter import ItemLinkFilter
from .core.refiner import RecommendationRefiner
from .logging_utils import component_logger
from .schemas import CandidateRec
from .validators import validate_group_keys, validate_required_columns

SIGNAL_COLUMNS = ("user", "item", "weight")
LINK_COLUMNS = ("item_A", "item_B", "weight")
CANDIDATE_COLUMNS = ("user", "item", "weight", "user_link", "item_link")


def _frame_to_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    # NaN from CSV/pandas becomes None so optional fields validate.
    return df.astype(object).where(df.notna(), None).to_dict("records")


@dataclass
class RecsysPipeline:
    """
    In-process driver that plays the role of the batch engine.

    Groups DataFrames by the stage's grouping key, runs one component per
    group and concatenates the results. Sequential and single-process; it
    exists for local runs and tests, not for production scheduling.

    Stages:
        - build_item_links:  signals grouped by user  -> directed item links
        - filter_item_links: links grouped by item_A  -> merged, pruned links
        - refine_user_recs:  signals + candidates by user -> ranked top-N recs
    """

    config: PipelineConfig
    reporter: Optional[ProgressReporter] = None
    logger: logging.Logger = field(default_factory=lambda: component_logger("pipeline"))

    @classmethod
    def from_env(
        cls,
        reporter: Optional[ProgressReporter] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "RecsysPipeline":
        """Build a pipeline from RECSYS_* environment variables (and .env)."""
        return cls(
            config=load_pipeline_config_from_env(),
            reporter=reporter,
            logger=component_logger("pipeline", logger),
        )

    # ------------------------------------------------------------
    # Stage 1: user signals -> item-item links
    # ------------------------------------------------------------
    def build_item_links(self, signals_df: pd.DataFrame) -> pd.DataFrame:
        required = SIGNAL_COLUMNS + (("signal_counts",) if self.config.detailed else ())
        validate_required_columns(signals_df, required, logger=self.logger, step_name="build_item_links")
        validate_group_keys(signals_df, "user", logger=self.logger, step_name="build_item_links")

        self.logger.info(
            "Building item-item links",
            extra={"event": "build_item_links_start", "shape": signals_df.shape},
        )

        builder = ItemItemGraphBuilder(detailed=self.config.detailed, reporter=self.reporter, logger=self.logger)
        rows: List[Dict[str, Any]] = []
        for _, group in signals_df.groupby("user", sort=True, dropna=False):
            links = builder.evaluate(_frame_to_rows(group))
            rows.extend(link.model_dump(by_alias=True) for link in links)

        columns = list(builder.output_schema().field_names)
        links_df = pd.DataFrame(rows, columns=columns)

        self.logger.info(
            "Item-item links built",
            extra={"event": "build_item_links_done", "shape": links_df.shape},
        )
        return links_df

    # ------------------------------------------------------------
    # Stage 2: links grouped by item_A -> merged, filtered links
    # ------------------------------------------------------------
    def filter_item_links(self, links_df: pd.DataFrame) -> pd.DataFrame:
        required = LINK_COLUMNS + (("link_data",) if self.config.detailed else ())
        validate_required_columns(links_df, required, logger=self.logger, step_name="filter_item_links")
        validate_group_keys(links_df, "item_A", logger=self.logger, step_name="filter_item_links")

        self.logger.info(
            "Filtering item-item links",
            extra={
                "event": "filter_item_links_start",
                "shape": links_df.shape,
                "min_link_weight": self.config.link_filter.min_link_weight,
            },
        )

        link_filter = ItemLinkFilter(
            self.config.link_filter.min_link_weight,
            detailed=self.config.link_filter.detailed,
            logger=self.logger,
        )
        rows: List[Dict[str, Any]] = []
        for item_a, group in links_df.groupby("item_A", sort=True, dropna=False):
            for target in link_filter.evaluate(_frame_to_rows(group)):
                rows.append({"item_A": item_a, **target.model_dump(by_alias=True)})

        columns = ["item_A", *link_filter.output_schema().field_names]
        filtered_df = pd.DataFrame(rows, columns=columns)

        self.logger.info(
            "Item-item links filtered",
            extra={"event": "filter_item_links_done", "shape": filtered_df.shape},
        )
        return filtered_df

    # ------------------------------------------------------------
    # Stage 3: per-user candidates -> final ranked recommendations
    # ------------------------------------------------------------
    def refine_user_recs(self, signals_df: pd.DataFrame, candidates_df: pd.DataFrame) -> pd.DataFrame:
        validate_required_columns(signals_df, SIGNAL_COLUMNS, logger=self.logger, step_name="refine_user_recs")
        validate_required_columns(candidates_df, CANDIDATE_COLUMNS, logger=self.logger, step_name="refine_user_recs")
        validate_group_keys(signals_df, "user", logger=self.logger, step_name="refine_user_recs")
        validate_group_keys(candidates_df, "user", logger=self.logger, step_name="refine_user_recs")

        self.logger.info(
            "Refining user recommendations",
            extra={"event": "refine_user_recs_start", "shape": candidates_df.shape},
        )

        refiner = RecommendationRefiner(
            self.config.refiner.num_recs,
            self.config.refiner.diversity_adjust,
            logger=self.logger,
        )
        seen_by_user = {user: group for user, group in signals_df.groupby("user", sort=False, dropna=False)}

        rows: List[Dict[str, Any]] = []
        for user, group in candidates_df.groupby("user", sort=True, dropna=False):
            seen = seen_by_user.get(user)
            seen_rows = _frame_to_rows(seen) if seen is not None else []
            recs = refiner.evaluate(seen_rows, _frame_to_rows(group))
            rows.extend(rec.model_dump() for rec in recs)

        recs_df = pd.DataFrame(rows, columns=list(CandidateRec.POSITIONAL_FIELDS))

        self.logger.info(
            "User recommendations refined",
            extra={"event": "refine_user_recs_done", "shape": recs_df.shape},
        )
        return recs_df

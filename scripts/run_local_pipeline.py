"""
Run the three stages locally over CSV files.

Inputs (under data/):
    interactions.csv  columns: user, item, weight
    candidates.csv    columns: user, item, weight, reason, user_link, item_link

Outputs (under outputs/):
    item_item_links.csv, user_item_recs.csv

Thresholds come from RECSYS_* environment variables (see recsys.config).
Detailed mode needs map-typed columns and is not supported from CSV.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from recsys.config import ConfigError
from recsys.logging_utils import configure_logger
from recsys.pipeline import RecsysPipeline

BASE_DIR = Path(__file__).resolve().parents[1]
INTERACTIONS_PATH = BASE_DIR / "data" / "interactions.csv"
CANDIDATES_PATH = BASE_DIR / "data" / "candidates.csv"
OUTPUT_DIR = BASE_DIR / "outputs"

SIGNAL_DTYPES = {"user": str, "item": str}
CANDIDATE_DTYPES = {"user": str, "item": str, "reason": str}


def main() -> None:
    logger = configure_logger(name="recsys.pipeline", level=logging.INFO)

    pipeline = RecsysPipeline.from_env(logger=logger)
    if pipeline.config.detailed:
        raise ConfigError("RECSYS_DETAILED=true is not supported for CSV inputs.")

    signals_df = pd.read_csv(INTERACTIONS_PATH, dtype=SIGNAL_DTYPES)
    candidates_df = pd.read_csv(CANDIDATES_PATH, dtype=CANDIDATE_DTYPES)

    links_df = pipeline.build_item_links(signals_df)
    filtered_df = pipeline.filter_item_links(links_df)
    recs_df = pipeline.refine_user_recs(signals_df, candidates_df)

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    filtered_df.to_csv(OUTPUT_DIR / "item_item_links.csv", index=False)
    recs_df.to_csv(OUTPUT_DIR / "user_item_recs.csv", index=False)

    print(f"✅ Item-item links: {len(filtered_df)} rows -> {OUTPUT_DIR / 'item_item_links.csv'}")
    print(f"✅ Recommendations: {len(recs_df)} rows -> {OUTPUT_DIR / 'user_item_recs.csv'}")


if __name__ == "__main__":
    main()

###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import logging
import os
from typing import Iterable, List

import numpy as np
import pandas as pd

from CommLens.Counts.counts import parse_count_file

logger = logging.getLogger(__name__)

BIN_COLUMNS = ["min", "max", "size"]


def get_from_input_descr(descr: str) -> List[int]:
    """Turn a comma-separated list of thresholds into a sorted list of unique ints."""
    thresholds = set()
    for item in descr.split(","):
        item = item.strip()
        if not item:
            continue
        value = int(item)
        if value <= 0:
            raise ValueError(f"bin thresholds must be positive: {value}")
        thresholds.add(value)
    return sorted(thresholds)


def classify(counts: Iterable[int], thresholds: List[int]) -> pd.DataFrame:
    """
    Classify counts into the bins delimited by `thresholds`.

    With thresholds [t0, t1] the bins are [0, t0), [t0, t1) and [t1, inf);
    `max` is inclusive and is -1 for the last, open bin.
    """
    thresholds = sorted(set(thresholds))
    values = np.sort(np.fromiter(counts, dtype=np.int64))
    # number of values below each threshold
    edges = np.searchsorted(values, thresholds, side="left")
    bounds = np.concatenate(([0], edges, [len(values)]))
    sizes = np.diff(bounds)

    mins = [0] + thresholds
    maxs = [t - 1 for t in thresholds] + [-1]
    return pd.DataFrame({"min": mins, "max": maxs, "size": sizes.astype(int)}, columns=BIN_COLUMNS)


def get_from_file(count_file: str, thresholds: List[int]) -> pd.DataFrame:
    """Classify every count of every (call, rank) of a compact counters file."""
    all_counts = []
    for block in parse_count_file(count_file):
        all_counts.extend(block.counts.all_counts())
    logger.info("Classifying %d counts from %s into %d bins", len(all_counts), count_file, len(thresholds) + 1)
    return classify(all_counts, thresholds)


def get_bins_filename(job_id: int, comm_id: int, lead_rank: int) -> str:
    return f"bins_job{job_id}_comm{comm_id}_rank{lead_rank}.md"


def save(output_dir: str, job_id: int, comm_id: int, lead_rank: int, df_bins: pd.DataFrame) -> str:
    path = os.path.join(output_dir, get_bins_filename(job_id, comm_id, lead_rank))
    with open(path, "w", encoding="utf-8") as f:
        for row in df_bins.itertuples(index=False):
            if row.max == -1:
                f.write(f"{row.min}+: {row.size}\n")
            else:
                f.write(f"{row.min}-{row.max}: {row.size}\n")
    return path

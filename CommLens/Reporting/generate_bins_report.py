###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Classify all the send counts of each communicator into bins.
"""

import os
import argparse
import sys
from typing import List, Optional

import logging

from CommLens.Bins import bins
from CommLens.Comm import comm
from CommLens.Counts import counts
from CommLens.errors import CommLensError

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] {%(filename)s:%(lineno)d} %(levelname)s - %(message)s"


def generate_bins_report(
    input_dir: str,
    output_dir: str,
    thresholds: List[int],
    collective_name: str = "alltoallv",
    profiler_src_dir: Optional[str] = None,
) -> List[str]:
    comm_data = comm.get_data(input_dir, collective_name, profiler_src_dir)
    output_paths = []
    for lead_rank, comm_id in comm_data.instances():
        job_id = counts.get_job_id_from_lead_rank(input_dir, lead_rank)
        logger.info("Ready to create %d bins", len(thresholds) + 1)
        count_file = os.path.join(input_dir, counts.get_send_count_file(job_id, lead_rank))
        df_bins = bins.get_from_file(count_file, thresholds)
        output_paths.append(bins.save(output_dir, job_id, comm_id, lead_rank, df_bins))
    return output_paths


def main():
    parser = argparse.ArgumentParser(
        description="Analyze the count files of a dataset and classify all the counts into bins"
    )
    parser.add_argument("--input_dir", type=str, required=True, help="Directory where the profiler data is")
    parser.add_argument("--output_dir", type=str, required=True, help="Output directory")
    parser.add_argument("--bins", type=str, default="200",
                        help="Comma-separated list of thresholds to use for the creation of bins")
    parser.add_argument("--collective", type=str, default="alltoallv", dest="collective_name",
                        help="Name of the profiled collective operation")
    parser.add_argument("--profiler_src_dir", type=str, default=None,
                        help="Where to look for the communicator data when the input directory does not have it (optional)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose mode")
    args = parser.parse_args()

    logging.basicConfig(
        stream=sys.stdout,
        level=logging.INFO if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
    )

    for path in (args.input_dir, args.output_dir):
        if not os.path.isdir(path):
            print(f"ERROR: {path} does not exist")
            sys.exit(1)

    try:
        thresholds = bins.get_from_input_descr(args.bins)
        for path in generate_bins_report(
            args.input_dir, args.output_dir, thresholds, args.collective_name, args.profiler_src_dir
        ):
            print(f"Bins successfully saved in {path}")
    except (CommLensError, OSError, ValueError) as e:
        print(f"ERROR: generate_bins_report() failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Calculate the bandwidth on a per collective call and rank basis from the
counts and execution times gathered with the collective profiler.

One report, bandwidth-percall-comm<leadRank>.md, is written per communicator
instance.
"""

import os
import argparse
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd
import tqdm
import logging

from CommLens.Bandwidth.bandwidth import CallsData, compute_all, summarize_df_bandwidth
from CommLens.Comm import comm
from CommLens.Counts import counts
from CommLens.Timings import timings
from CommLens.errors import CommLensError, DegenerateDatasetError

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] {%(filename)s:%(lineno)d} %(levelname)s - %(message)s"


@dataclass
class BandwidthReportConfig:
    input_dir: str
    output_dir: str
    collective_name: str = "alltoallv"
    profiler_src_dir: Optional[str] = None
    continue_on_error: bool = False
    strict_exec_times: bool = False
    scale_counts_by_datatype_size: bool = False
    output_csvs_dir: Optional[str] = None
    output_xlsx_path: Optional[str] = None


def get_output_filename(lead_rank: int) -> str:
    return f"bandwidth-percall-comm{lead_rank}.md"


def render_report(calls_data: CallsData, rank_count: int) -> str:
    """Render the unscaled send/receive bandwidth of every rank, one block per call."""
    lines = []
    for call_id, d in calls_data.iter_calls():
        lines.append(f"# Call {call_id}\nsend BW (B/s)\treceive BW (B/s)\n")
        for rank in range(rank_count):
            lines.append(f"{d.send_rank_bw[rank]:.2f}\t{d.recv_rank_bw[rank]:.2f}\n")
        lines.append("\n")
    return "".join(lines)


def _scale_totals(totals: Dict[int, Dict[int, int]], datatype_size: int) -> Dict[int, Dict[int, int]]:
    return {
        call_id: {rank: total * datatype_size for rank, total in ranks.items()}
        for call_id, ranks in totals.items()
    }


class BandwidthReportDriver:
    """Join counts and execution times of each communicator instance and write its report."""

    def __init__(self, config: BandwidthReportConfig):
        self.config = config
        self.dict_name2df: Dict[str, pd.DataFrame] = {}

    def process_instance(self, lead_rank: int, comm_id: int) -> Tuple[str, CallsData]:
        cfg = self.config
        job_id = counts.get_job_id_from_lead_rank(cfg.input_dir, lead_rank)
        records = counts.load_communicator_raw_counts(cfg.input_dir, job_id, lead_rank)
        send_totals, recv_totals = counts.reduce_records(records)
        # call ids run from 0 to num_calls - 1
        all_calls = set(send_totals) | set(recv_totals)
        num_calls = max(all_calls) + 1 if all_calls else 0

        logger.info("-> Loading execution times...")
        timing_job_id = timings.get_job_id_from_data_files(cfg.input_dir, cfg.collective_name, lead_rank, comm_id)
        exec_time_path = os.path.join(
            cfg.input_dir,
            timings.get_exec_timing_filename(cfg.collective_name, lead_rank, comm_id, timing_job_id),
        )
        exec_times = timings.parse_timing_file(exec_time_path)

        # The communicator size is the same for all the calls of the instance
        logger.info("-> Calculating bandwidths...")
        first = records[0]
        if first.comm_size == 0:
            raise DegenerateDatasetError(f"invalid number of ranks: {first.comm_size}")
        if first.send_datatype_size == 0:
            raise DegenerateDatasetError(f"invalid send datatype size: {first.send_datatype_size}")
        if first.recv_datatype_size == 0:
            raise DegenerateDatasetError(f"invalid recv datatype size: {first.recv_datatype_size}")
        rank_count = first.comm_size

        if cfg.scale_counts_by_datatype_size:
            send_totals = _scale_totals(send_totals, first.send_datatype_size)
            recv_totals = _scale_totals(recv_totals, first.recv_datatype_size)

        calls_data = compute_all(
            num_calls,
            rank_count,
            send_totals,
            recv_totals,
            exec_times,
            strict_exec_times=cfg.strict_exec_times,
        )

        logger.info("-> Saving results...")
        output_path = os.path.join(cfg.output_dir, get_output_filename(lead_rank))
        report = render_report(calls_data, rank_count)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(report)
        return output_path, calls_data

    def run(self) -> List[str]:
        """Process every communicator instance; returns the paths of the written reports."""
        cfg = self.config
        comm_data = comm.get_data(cfg.input_dir, cfg.collective_name, cfg.profiler_src_dir)

        output_paths = []
        dfs_long = []
        for lead_rank, comm_id in tqdm.tqdm(list(comm_data.instances()), disable=not sys.stderr.isatty()):
            try:
                output_path, calls_data = self.process_instance(lead_rank, comm_id)
            except (CommLensError, OSError, ValueError) as e:
                if not cfg.continue_on_error:
                    raise
                logger.error("Skipping communicator %d of lead rank %d: %s", comm_id, lead_rank, e)
                continue
            print(f"Data successfully saved in {output_path}")
            output_paths.append(output_path)

            df = calls_data.to_dataframe()
            df.insert(0, "comm_id", comm_id)
            df.insert(0, "lead_rank", lead_rank)
            dfs_long.append(df)

        if dfs_long and (cfg.output_csvs_dir or cfg.output_xlsx_path):
            df_long = pd.concat(dfs_long, ignore_index=True)
            df_summary = pd.concat(
                [
                    summarize_df_bandwidth(df.drop(columns=["lead_rank", "comm_id"])).assign(
                        lead_rank=df["lead_rank"].iloc[0], comm_id=df["comm_id"].iloc[0]
                    )
                    for df in dfs_long
                ],
                ignore_index=True,
            )
            self.dict_name2df = {"bandwidth_long": df_long, "bandwidth_summary": df_summary}
            self.write_tables()
        return output_paths

    def write_tables(self):
        cfg = self.config
        if cfg.output_csvs_dir:
            logger.info("Writing CSV files to: %s", cfg.output_csvs_dir)
            os.makedirs(cfg.output_csvs_dir, exist_ok=True)
            for sheet_name, df in self.dict_name2df.items():
                csv_path = os.path.join(cfg.output_csvs_dir, f"{sheet_name}.csv")
                df.to_csv(csv_path, index=False)
                logger.info("  - %s.csv (%d rows)", sheet_name, len(df))
        if cfg.output_xlsx_path:
            logger.info("Writing Excel file to: %s", cfg.output_xlsx_path)
            try:
                import openpyxl  # noqa: F401
            except (ImportError, ModuleNotFoundError) as e:
                logger.error("openpyxl required for Excel output: %s. pip install openpyxl", e)
                raise
            with pd.ExcelWriter(cfg.output_xlsx_path, engine="openpyxl") as writer:
                for sheet_name, df in self.dict_name2df.items():
                    df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
                    logger.info("  - Sheet '%s' (%d rows)", sheet_name, len(df))


def generate_bandwidth_report(
    input_dir: str,
    output_dir: str,
    collective_name: str = "alltoallv",
    profiler_src_dir: Optional[str] = None,
    continue_on_error: bool = False,
    strict_exec_times: bool = False,
    scale_counts_by_datatype_size: bool = False,
    output_csvs_dir: Optional[str] = None,
    output_xlsx_path: Optional[str] = None,
) -> List[str]:
    config = BandwidthReportConfig(
        input_dir=input_dir,
        output_dir=output_dir,
        collective_name=collective_name,
        profiler_src_dir=profiler_src_dir,
        continue_on_error=continue_on_error,
        strict_exec_times=strict_exec_times,
        scale_counts_by_datatype_size=scale_counts_by_datatype_size,
        output_csvs_dir=output_csvs_dir,
        output_xlsx_path=output_xlsx_path,
    )
    return BandwidthReportDriver(config).run()


def main():
    parser = argparse.ArgumentParser(
        description="Calculate the bandwidth on a per collective call and rank basis based on the counts "
        "and execution times gathered with the collective profiler"
    )
    parser.add_argument("--input_dir", type=str, required=True, help="Directory where the profiler data is")
    parser.add_argument("--output_dir", type=str, required=True, help="Directory where to save the bandwidth data")
    parser.add_argument("--collective", type=str, default="alltoallv", dest="collective_name",
                        help="Name of the profiled collective operation")
    parser.add_argument("--profiler_src_dir", type=str, default=None,
                        help="Where to look for the communicator data when the input directory does not have it (optional)")
    parser.add_argument("--continue_on_error", action="store_true",
                        help="Skip a communicator that cannot be processed instead of stopping")
    parser.add_argument("--strict_exec_times", action="store_true",
                        help="Fail on execution times that are not strictly positive")
    parser.add_argument("--use_datatype_size", action="store_true", dest="scale_counts_by_datatype_size",
                        help="Multiply counts by the datatype size so bandwidths are in bytes per second")
    parser.add_argument("--output_csvs_dir", type=str, default=None,
                        help="Directory to save the bandwidth tables as CSV files")
    parser.add_argument("--output_xlsx_path", type=str, default=None,
                        help="Path to save the bandwidth tables as an Excel file")
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
        generate_bandwidth_report(
            input_dir=args.input_dir,
            output_dir=args.output_dir,
            collective_name=args.collective_name,
            profiler_src_dir=args.profiler_src_dir,
            continue_on_error=args.continue_on_error,
            strict_exec_times=args.strict_exec_times,
            scale_counts_by_datatype_size=args.scale_counts_by_datatype_size,
            output_csvs_dir=args.output_csvs_dir,
            output_xlsx_path=args.output_xlsx_path,
        )
    except (CommLensError, OSError, ValueError) as e:
        print(f"ERROR: generate_bandwidth_report() failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

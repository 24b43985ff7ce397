###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Reader for the per-call execution time files of the collective profiler.

    # Format version: 1
    # Call 0
    0.000125
    0.000131
    # Call 1
    ...

Each call header is followed by one time in seconds per rank, in rank order.
"""

import glob
import logging
import os
import re
from typing import Dict

from CommLens.errors import TimingFileFormatError

logger = logging.getLogger(__name__)

FORMAT_VERSION_RE = re.compile(r"^#\s*Format version:\s*(\d+)\s*$")
CALL_HEADER_RE = re.compile(r"^#\s*Call\s+(\d+)\s*$")


def get_exec_timing_filename(collective_name: str, lead_rank: int, comm_id: int, job_id: int) -> str:
    return f"{collective_name}_execution_times.rank{lead_rank}_comm{comm_id}_job{job_id}.md"


def get_job_id_from_data_files(input_dir: str, collective_name: str, lead_rank: int, comm_id: int) -> int:
    """Find the job id of the execution time file of a communicator instance."""
    prefix = f"{collective_name}_execution_times.rank{lead_rank}_comm{comm_id}_job"
    job_ids = set()
    for path in glob.glob(os.path.join(input_dir, glob.escape(prefix) + "*.md")):
        job = os.path.basename(path)[len(prefix):-len(".md")]
        if job.isdigit():
            job_ids.add(int(job))
    if not job_ids:
        raise FileNotFoundError(
            f"no {collective_name} execution time file for lead rank {lead_rank}, comm {comm_id} in {input_dir}"
        )
    if len(job_ids) > 1:
        raise ValueError(
            f"several job ids for lead rank {lead_rank}, comm {comm_id} in {input_dir}: {sorted(job_ids)}"
        )
    return job_ids.pop()


def parse_timing_file(path: str) -> Dict[int, Dict[int, float]]:
    """
    Parse an execution time file.

    Returns:
        call id -> rank -> execution time in seconds.

    Raises:
        TimingFileFormatError: a time appears before any call header, a value
            is not a number or a call is listed twice.
    """
    exec_times: Dict[int, Dict[int, float]] = {}
    current = None

    with open(path, "r") as f:
        for lineno, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line:
                continue

            match = CALL_HEADER_RE.match(line)
            if match:
                call_id = int(match.group(1))
                if call_id in exec_times:
                    raise TimingFileFormatError(f"{path}:{lineno}: call {call_id} listed twice")
                current = exec_times[call_id] = {}
                continue

            match = FORMAT_VERSION_RE.match(line)
            if match:
                logger.debug("%s: format version %s", path, match.group(1))
                continue
            if line.startswith("#"):
                continue

            if current is None:
                raise TimingFileFormatError(f"{path}:{lineno}: execution time outside of a call section")
            try:
                current[len(current)] = float(line)
            except ValueError as e:
                raise TimingFileFormatError(f"{path}:{lineno}: invalid execution time {line!r}") from e

    return exec_times

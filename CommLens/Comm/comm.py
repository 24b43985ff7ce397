###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import glob
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

COMM_LINE_RE = re.compile(r"^Communicator ID:\s*(\d+)\s*-\s*Lead rank:\s*(\d+)\s*$")


@dataclass
class CommData:
    """Which lead rank owns which communicator ids."""
    lead_map: Dict[int, List[int]] = field(default_factory=dict)

    def instances(self) -> Iterator[Tuple[int, int]]:
        """Yield (lead rank, comm id) in ascending order."""
        for lead_rank in sorted(self.lead_map):
            for comm_id in self.lead_map[lead_rank]:
                yield lead_rank, comm_id

    def __len__(self):
        return sum(len(comm_ids) for comm_ids in self.lead_map.values())


def get_comm_data_files(directory: str, collective_name: str) -> List[str]:
    return sorted(glob.glob(os.path.join(directory, f"{collective_name}_comm_data_rank*.md")))


def parse_comm_data_file(path: str) -> List[Tuple[int, int]]:
    """Return the (comm id, lead rank) pairs listed in a communicator data file."""
    pairs = []
    with open(path, "r") as f:
        for line in f:
            match = COMM_LINE_RE.match(line.strip())
            if match:
                pairs.append((int(match.group(1)), int(match.group(2))))
    return pairs


def get_data(input_dir: str, collective_name: str = "alltoallv", profiler_src_dir: Optional[str] = None) -> CommData:
    """
    Build the lead rank -> communicator ids map of a dataset.

    The communicator data files are looked up in `input_dir`, or in
    `profiler_src_dir` when the dataset does not carry them.
    """
    files = get_comm_data_files(input_dir, collective_name)
    if not files and profiler_src_dir:
        logger.info("No communicator data in %s, looking into %s", input_dir, profiler_src_dir)
        files = get_comm_data_files(profiler_src_dir, collective_name)
    if not files:
        raise FileNotFoundError(f"no {collective_name} communicator data file in {input_dir}")

    leads: Dict[int, set] = {}
    for path in files:
        for comm_id, lead_rank in parse_comm_data_file(path):
            leads.setdefault(lead_rank, set()).add(comm_id)
    logger.info("Found %d communicator(s) across %d file(s)", sum(len(v) for v in leads.values()), len(files))
    return CommData(lead_map={lead: sorted(comm_ids) for lead, comm_ids in leads.items()})

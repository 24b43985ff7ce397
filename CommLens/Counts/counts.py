###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Reader for the compact raw counters files written by the collective profiler.

A counters file holds one or more blocks. Ranks that share the same counts
across a set of calls are written once:

    # Raw counters

    Number of ranks: 4
    Datatype size: 8
    Alltoallv calls 0-1,3

    BEGINNING DATA
    Rank(s) 0-1, 3: 1 2 3 4
    Rank(s) 2: 0 0 0 0
    END DATA

The integers after the colon are the counts a rank exchanged with each of its
peers during one call; they are expanded here to an explicit
(call id, rank) -> counts structure.
"""

import glob
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple

from CommLens.errors import CommLensError, CountFileFormatError, DegenerateDatasetError

logger = logging.getLogger(__name__)

SEND_COUNT_FILE_PREFIX = "send-counters"
RECV_COUNT_FILE_PREFIX = "recv-counters"

MARKER_BEGIN_DATA = "BEGINNING DATA"
MARKER_END_DATA = "END DATA"
HEADER_NUM_RANKS = "Number of ranks:"
HEADER_DATATYPE_SIZE = "Datatype size:"

CALLS_LINE_RE = re.compile(r"^([A-Za-z_]+) calls\s+(.+)$")
RANKS_LINE_RE = re.compile(r"^Rank\(s\)\s+([^:]+):\s*(.*)$")
JOB_ID_RE = re.compile(r"\.job(\d+)\.rank(\d+)\.txt$")


def parse_range_list(text: str) -> List[int]:
    """
    Expand a list such as "0-2, 5" into [0, 1, 2, 5].

    Raises:
        ValueError: an item is not an integer or a range is reversed.
    """
    ids = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        if "-" in item:
            start, end = (int(x) for x in item.split("-", 1))
            if end < start:
                raise ValueError(f"invalid range: {item}")
            ids.extend(range(start, end + 1))
        else:
            ids.append(int(item))
    return ids


class RawCounts:
    """Counts recorded for every (call id, rank) pair, kept in their raw list form."""

    def __init__(self):
        self._entries: Dict[Tuple[int, int], Tuple[int, ...]] = {}

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries

    def add(self, call_id: int, rank: int, counts: Iterable[int]):
        key = (call_id, rank)
        if key in self._entries:
            raise ValueError(f"counts for call {call_id}, rank {rank} already recorded")
        self._entries[key] = tuple(int(c) for c in counts)

    def get(self, call_id: int, rank: int) -> Tuple[int, ...]:
        return self._entries.get((call_id, rank), ())

    def calls(self) -> List[int]:
        return sorted({call_id for call_id, _ in self._entries})

    def ranks(self, call_id: int) -> List[int]:
        return sorted(rank for c, rank in self._entries if c == call_id)

    def entries(self) -> Iterator[Tuple[int, int, Tuple[int, ...]]]:
        """Yield (call id, rank, counts) sorted by call id then rank."""
        for call_id, rank in sorted(self._entries):
            yield call_id, rank, self._entries[(call_id, rank)]

    def all_counts(self) -> List[int]:
        return [c for _, _, counts in self.entries() for c in counts]

    def merge(self, other: "RawCounts"):
        for call_id, rank, counts in other.entries():
            self.add(call_id, rank, counts)

    def restrict(self, calls: Iterable[int]) -> "RawCounts":
        wanted = set(calls)
        subset = RawCounts()
        for call_id, rank, counts in self.entries():
            if call_id in wanted:
                subset.add(call_id, rank, counts)
        return subset


@dataclass
class CountBlock:
    comm_size: int
    datatype_size: int
    calls: List[int]
    counts: RawCounts = field(default_factory=RawCounts)


@dataclass
class RawCountRecord:
    """Send and receive counts of a group of calls of one communicator."""
    comm_size: int
    send_datatype_size: int
    recv_datatype_size: int
    send: RawCounts
    recv: RawCounts

    @property
    def calls(self) -> List[int]:
        return sorted(set(self.send.calls()) | set(self.recv.calls()))


def get_send_count_file(job_id: int, lead_rank: int) -> str:
    return f"{SEND_COUNT_FILE_PREFIX}.job{job_id}.rank{lead_rank}.txt"


def get_recv_count_file(job_id: int, lead_rank: int) -> str:
    return f"{RECV_COUNT_FILE_PREFIX}.job{job_id}.rank{lead_rank}.txt"


def get_job_id_from_lead_rank(input_dir: str, lead_rank: int) -> int:
    """Find the job id of the send counters file written by `lead_rank`."""
    pattern = os.path.join(input_dir, f"{SEND_COUNT_FILE_PREFIX}.job*.rank{lead_rank}.txt")
    job_ids = set()
    for path in glob.glob(pattern):
        match = JOB_ID_RE.search(os.path.basename(path))
        if match and int(match.group(2)) == lead_rank:
            job_ids.add(int(match.group(1)))
    if not job_ids:
        raise FileNotFoundError(f"no send counters file for lead rank {lead_rank} in {input_dir}")
    if len(job_ids) > 1:
        raise ValueError(f"several job ids for lead rank {lead_rank} in {input_dir}: {sorted(job_ids)}")
    return job_ids.pop()


def parse_count_file(path: str) -> List[CountBlock]:
    """Parse a compact raw counters file into its blocks."""

    def _error(lineno, msg):
        return CountFileFormatError(f"{path}:{lineno}: {msg}")

    blocks = []
    comm_size = None
    datatype_size = None
    calls = None
    block = None

    with open(path, "r") as f:
        for lineno, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue

            if block is not None:
                if line == MARKER_END_DATA:
                    blocks.append(block)
                    block = None
                    calls = None
                    continue
                match = RANKS_LINE_RE.match(line)
                if not match:
                    raise _error(lineno, f"unexpected line in data section: {line!r}")
                try:
                    ranks = parse_range_list(match.group(1))
                    values = [int(v) for v in match.group(2).split()]
                except ValueError as e:
                    raise _error(lineno, str(e)) from e
                for call_id in block.calls:
                    for rank in ranks:
                        if rank >= block.comm_size:
                            raise _error(lineno, f"rank {rank} out of range for {block.comm_size} ranks")
                        try:
                            block.counts.add(call_id, rank, values)
                        except ValueError as e:
                            raise _error(lineno, str(e)) from e
                continue

            try:
                if line.startswith(HEADER_NUM_RANKS):
                    comm_size = int(line[len(HEADER_NUM_RANKS):])
                elif line.startswith(HEADER_DATATYPE_SIZE):
                    datatype_size = int(line[len(HEADER_DATATYPE_SIZE):])
                elif CALLS_LINE_RE.match(line):
                    calls = parse_range_list(CALLS_LINE_RE.match(line).group(2))
                elif line == MARKER_BEGIN_DATA:
                    if comm_size is None or datatype_size is None or calls is None:
                        raise _error(lineno, "data section without number of ranks, datatype size and calls")
                    if comm_size == 0:
                        raise DegenerateDatasetError(f"{path}:{lineno}: invalid number of ranks: {comm_size}")
                    block = CountBlock(comm_size=comm_size, datatype_size=datatype_size, calls=calls)
                else:
                    logger.debug("%s:%d: ignoring %r", path, lineno, line)
            except CommLensError:
                raise
            except ValueError as e:
                raise _error(lineno, str(e)) from e

    if block is not None:
        raise CountFileFormatError(f"{path}: missing '{MARKER_END_DATA}'")
    return blocks


def load_communicator_raw_counts(input_dir: str, job_id: int, lead_rank: int) -> List[RawCountRecord]:
    """
    Load the send and receive counters of the communicator led by `lead_rank`.

    One record is returned per block of the send counters file; the receive
    counts of the same calls are attached to it.
    """
    send_path = os.path.join(input_dir, get_send_count_file(job_id, lead_rank))
    recv_path = os.path.join(input_dir, get_recv_count_file(job_id, lead_rank))
    logger.info("Loading counts from %s and %s", send_path, recv_path)

    send_blocks = parse_count_file(send_path)
    recv_blocks = parse_count_file(recv_path)
    if not send_blocks:
        raise CountFileFormatError(f"{send_path}: no count data")

    recv_counts = RawCounts()
    recv_datatype_sizes = {}
    for b in recv_blocks:
        try:
            recv_counts.merge(b.counts)
        except ValueError as e:
            raise CountFileFormatError(f"{recv_path}: {e}") from e
        for call_id in b.calls:
            recv_datatype_sizes[call_id] = b.datatype_size
    default_recv_datatype_size = recv_blocks[0].datatype_size if recv_blocks else 0

    records = []
    for b in send_blocks:
        records.append(RawCountRecord(
            comm_size=b.comm_size,
            send_datatype_size=b.datatype_size,
            recv_datatype_size=recv_datatype_sizes.get(b.calls[0], default_recv_datatype_size) if b.calls else default_recv_datatype_size,
            send=b.counts,
            recv=recv_counts.restrict(b.calls),
        ))
    return records


def reduce_raw_counts(raw: RawCounts) -> Dict[int, Dict[int, int]]:
    """Sum the counts of every (call id, rank) into call id -> rank -> total."""
    totals: Dict[int, Dict[int, int]] = {}
    for call_id, rank, counts in raw.entries():
        totals.setdefault(call_id, {})[rank] = sum(counts)
    return totals


def reduce_records(records: List[RawCountRecord]) -> Tuple[Dict[int, Dict[int, int]], Dict[int, Dict[int, int]]]:
    """Reduce the send and receive counts of all the records of a communicator."""
    send = RawCounts()
    recv = RawCounts()
    for record in records:
        try:
            send.merge(record.send)
            recv.merge(record.recv)
        except ValueError as e:
            raise CountFileFormatError(str(e)) from e
    return reduce_raw_counts(send), reduce_raw_counts(recv)

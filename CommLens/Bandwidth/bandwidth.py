###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

try:
    from enum import StrEnum
except ImportError:  # Python < 3.11
    from backports.strenum import StrEnum

import numpy as np
import pandas as pd

from CommLens.errors import InvalidExecutionTimeError, MissingExecutionTimeError
from CommLens.util import UnitScaler

logger = logging.getLogger(__name__)

BASE_UNIT = "B/s"


class BandwidthColumns(StrEnum):
    Call             = 'call'
    Rank             = 'rank'
    SendData         = 'send data'
    RecvData         = 'recv data'
    SendBW           = 'send BW (B/s)'
    RecvBW           = 'receive BW (B/s)'
    ScaledSendBW     = 'scaled send BW'
    ScaledSendBWUnit = 'scaled send BW unit'
    ScaledRecvBW     = 'scaled receive BW'
    ScaledRecvBWUnit = 'scaled receive BW unit'


@dataclass(frozen=True)
class CallData:
    """
    Bandwidth of every rank for one collective call.

    Every map is keyed by rank, covers ranks 0..N-1 without gaps and is
    read-only once the object is built.
    """
    send_data: Mapping[int, int]
    recv_data: Mapping[int, int]
    send_rank_bw: Mapping[int, float]
    recv_rank_bw: Mapping[int, float]
    scaled_send_rank_bw: Mapping[int, float]
    scaled_send_rank_bw_unit: Mapping[int, str]
    scaled_recv_rank_bw: Mapping[int, float]
    scaled_recv_rank_bw_unit: Mapping[int, str]

    @property
    def ranks(self) -> int:
        return len(self.send_rank_bw)


@dataclass(frozen=True)
class CallsData:
    """All the CallData of one communicator instance, keyed by call id."""
    rank_count: int
    call_data: Mapping[int, CallData]

    def __len__(self):
        return len(self.call_data)

    def iter_calls(self) -> Iterator[Tuple[int, CallData]]:
        """Yield (call id, CallData) in ascending call id order."""
        for call_id in sorted(self.call_data):
            yield call_id, self.call_data[call_id]

    def to_dataframe(self) -> pd.DataFrame:
        """Long table with one row per (call, rank)."""
        rows = []
        for call_id, d in self.iter_calls():
            for rank in range(self.rank_count):
                # same order as BandwidthColumns
                rows.append((
                    call_id,
                    rank,
                    d.send_data[rank],
                    d.recv_data[rank],
                    d.send_rank_bw[rank],
                    d.recv_rank_bw[rank],
                    d.scaled_send_rank_bw[rank],
                    d.scaled_send_rank_bw_unit[rank],
                    d.scaled_recv_rank_bw[rank],
                    d.scaled_recv_rank_bw_unit[rank],
                ))
        return pd.DataFrame(rows, columns=[str(c) for c in BandwidthColumns])


def _scale_bandwidth(bw: float) -> Tuple[float, str]:
    # a zero bandwidth keeps the base unit
    if bw == 0:
        return bw, BASE_UNIT
    unit, scaled = UnitScaler.scale(BASE_UNIT, [bw])
    return scaled[0], unit


def compute_call(
    rank_count: int,
    send_totals: Mapping[int, int],
    recv_totals: Mapping[int, int],
    exec_times: Mapping[int, float],
    strict_exec_times: bool = False,
    call_id: Optional[int] = None,
) -> CallData:
    """
    Calculate the bandwidth of every rank for a single call.

    Args:
        rank_count: number of ranks in the communicator.
        send_totals: rank -> total amount of data sent during the call.
        recv_totals: rank -> total amount of data received during the call.
            Ranks absent from either map did not send/receive anything.
        exec_times: rank -> execution time of the call in seconds.
        strict_exec_times: reject execution times that are not strictly
            positive instead of producing inf/NaN bandwidths.
        call_id: only used in error messages.

    Returns:
        CallData with an entry for every rank in [0, rank_count).

    Raises:
        MissingExecutionTimeError: a rank has no execution time.
        InvalidExecutionTimeError: strict_exec_times is set and a time is <= 0.
    """
    send_totals = send_totals or {}
    recv_totals = recv_totals or {}
    exec_times = exec_times or {}

    send_data: Dict[int, int] = {}
    recv_data: Dict[int, int] = {}
    send_bw: Dict[int, float] = {}
    recv_bw: Dict[int, float] = {}
    scaled_send_bw: Dict[int, float] = {}
    scaled_send_unit: Dict[int, str] = {}
    scaled_recv_bw: Dict[int, float] = {}
    scaled_recv_unit: Dict[int, str] = {}

    for rank in range(rank_count):
        if rank not in exec_times or exec_times[rank] is None:
            raise MissingExecutionTimeError(call_id, rank)
        exec_time = np.float64(exec_times[rank])
        if strict_exec_times and not exec_time > 0:
            raise InvalidExecutionTimeError(
                f"execution time of call {call_id}, rank {rank} is {exec_time}"
            )

        send_data[rank] = int(send_totals.get(rank, 0))
        recv_data[rank] = int(recv_totals.get(rank, 0))
        # IEEE semantics: a zero time gives inf or NaN
        with np.errstate(divide="ignore", invalid="ignore"):
            send_bw[rank] = float(np.float64(send_data[rank]) / exec_time)
            recv_bw[rank] = float(np.float64(recv_data[rank]) / exec_time)

        scaled_send_bw[rank], scaled_send_unit[rank] = _scale_bandwidth(send_bw[rank])
        scaled_recv_bw[rank], scaled_recv_unit[rank] = _scale_bandwidth(recv_bw[rank])

    return CallData(
        send_data=MappingProxyType(send_data),
        recv_data=MappingProxyType(recv_data),
        send_rank_bw=MappingProxyType(send_bw),
        recv_rank_bw=MappingProxyType(recv_bw),
        scaled_send_rank_bw=MappingProxyType(scaled_send_bw),
        scaled_send_rank_bw_unit=MappingProxyType(scaled_send_unit),
        scaled_recv_rank_bw=MappingProxyType(scaled_recv_bw),
        scaled_recv_rank_bw_unit=MappingProxyType(scaled_recv_unit),
    )


def compute_all(
    num_calls: int,
    rank_count: int,
    send_totals: Mapping[int, Mapping[int, int]],
    recv_totals: Mapping[int, Mapping[int, int]],
    exec_times: Mapping[int, Mapping[int, float]],
    strict_exec_times: bool = False,
) -> CallsData:
    """
    Calculate the bandwidth for all the calls of a communicator.

    The outer keys of send_totals, recv_totals and exec_times are call ids,
    the inner keys are ranks. Calls 0..num_calls-1 are computed in ascending
    order with the same rank_count. Any failure aborts the whole computation;
    nothing is returned for the calls that succeeded before it.
    """
    call_data = {}
    for call in range(num_calls):
        call_data[call] = compute_call(
            rank_count,
            send_totals.get(call, {}),
            recv_totals.get(call, {}),
            exec_times.get(call, {}),
            strict_exec_times=strict_exec_times,
            call_id=call,
        )
    logger.debug("Computed bandwidth for %d calls over %d ranks", num_calls, rank_count)
    return CallsData(rank_count=rank_count, call_data=MappingProxyType(call_data))


def summarize_df_bandwidth(df_bandwidth: pd.DataFrame, agg_metrics: List[str] = ['mean', 'min', 'max']) -> pd.DataFrame:
    """Aggregate the per-rank bandwidths of the long table per call."""
    if df_bandwidth.empty:
        return pd.DataFrame(columns=[str(BandwidthColumns.Call)])

    agg_logic = {
        str(BandwidthColumns.Rank): ['size'],
        str(BandwidthColumns.SendData): ['sum'],
        str(BandwidthColumns.RecvData): ['sum'],
        str(BandwidthColumns.SendBW): agg_metrics,
        str(BandwidthColumns.RecvBW): agg_metrics,
    }
    agg_result = df_bandwidth.groupby(str(BandwidthColumns.Call)).agg(agg_logic)
    agg_result.columns = [f"{col[0]}_{col[1]}" for col in agg_result.columns]
    agg_result.rename(columns={f"{BandwidthColumns.Rank}_size": 'ranks'}, inplace=True)
    return agg_result.reset_index()

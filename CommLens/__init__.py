###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

from .Bandwidth.bandwidth import CallData, CallsData, compute_call, compute_all
from .Bins import bins
from .Comm.comm import CommData
from .Counts.counts import RawCounts, RawCountRecord, reduce_raw_counts
from .util import UnitScaler
from .errors import *
from .Reporting import *

__all__ = [
    "CallData",
    "CallsData",
    "compute_call",
    "compute_all",
    "bins",
    "CommData",
    "RawCounts",
    "RawCountRecord",
    "reduce_raw_counts",
    "UnitScaler",
    "CommLensError",
    "InvalidUnitError",
    "ScalingError",
    "MissingExecutionTimeError",
    "InvalidExecutionTimeError",
    "DegenerateDatasetError",
    "CountFileFormatError",
    "TimingFileFormatError",
    "BandwidthReportConfig",
    "BandwidthReportDriver",
    "generate_bandwidth_report",
    "generate_bins_report",
]

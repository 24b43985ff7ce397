###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################


class CommLensError(Exception):
    """Base class for all errors raised while analysing profiler data."""


class InvalidUnitError(CommLensError, ValueError):
    """The base unit handed to the unit scaler is not a known unit."""


class ScalingError(CommLensError, ValueError):
    """The unit scaler was given nothing to scale."""


class MissingExecutionTimeError(CommLensError, KeyError):
    """A (call, rank) pair has no execution time."""

    def __init__(self, call_id, rank):
        self.call_id = call_id
        self.rank = rank
        if call_id is None:
            msg = f"no execution time for rank {rank}"
        else:
            msg = f"no execution time for call {call_id}, rank {rank}"
        super().__init__(msg)

    def __str__(self):
        # KeyError quotes its argument otherwise
        return self.args[0]


class InvalidExecutionTimeError(CommLensError, ValueError):
    """An execution time is not strictly positive."""


class DegenerateDatasetError(CommLensError, ValueError):
    """Communicator size or one of the datatype sizes is zero."""


class CountFileFormatError(CommLensError, ValueError):
    """A count file does not follow the compact raw counters format."""


class TimingFileFormatError(CommLensError, ValueError):
    """An execution time file cannot be parsed."""

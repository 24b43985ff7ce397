###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import math
from typing import Iterable, List, Tuple

try:
    from enum import StrEnum
except ImportError:  # Python < 3.11
    from backports.strenum import StrEnum

from CommLens.errors import InvalidUnitError, ScalingError


class UnitScaler:
    """
    Express raw magnitudes in the largest SI prefix that keeps them readable.

    Two unit families are known: bytes (B, KB, MB, ...) and byte rates
    (B/s, KB/s, MB/s, ...). Prefixes are powers of 1000. Any member of a
    family can be used as the base unit of a batch; the result may move up or
    down within the family.

    The prefix is chosen from the largest finite absolute value of the batch so
    that it lands in [1, 1000); every value of the batch is divided by the same
    factor so they stay comparable.

    Example:
        >>> UnitScaler.scale("B/s", [2500.0, 500.0])
        ('KB/s', [2.5, 0.5])
    """

    MULTIPLIER = 1000
    PREFIXES = ("", "K", "M", "G", "T", "P", "E")

    class Families(StrEnum):
        Rate  = 'B/s'
        Bytes = 'B'

    @staticmethod
    def parse_unit(unit: str) -> Tuple[str, int]:
        """Split a unit label into its family and its prefix index."""
        if not isinstance(unit, str):
            raise InvalidUnitError(f"unit must be a string, got {unit!r}")
        for family in UnitScaler.Families:
            if unit.endswith(family):
                prefix = unit[: -len(family)]
                if prefix in UnitScaler.PREFIXES:
                    return str(family), UnitScaler.PREFIXES.index(prefix)
        raise InvalidUnitError(f"unknown unit: {unit!r}")

    @staticmethod
    def multiplier_for(unit: str) -> float:
        """Factor of `unit` relative to its family base, e.g. 'MB/s' -> 1e6."""
        _, index = UnitScaler.parse_unit(unit)
        return float(UnitScaler.MULTIPLIER ** index)

    @staticmethod
    def scale(base_unit: str, values: Iterable[float]) -> Tuple[str, List[float]]:
        family, index = UnitScaler.parse_unit(base_unit)
        values = [float(v) for v in values]
        if not values:
            raise ScalingError(f"no value to scale from {base_unit}")

        finite = [abs(v) for v in values if math.isfinite(v)]
        representative = max(finite) if finite else 0.0
        if representative == 0:
            return base_unit, values

        target = index
        magnitude = representative
        while magnitude >= UnitScaler.MULTIPLIER and target < len(UnitScaler.PREFIXES) - 1:
            magnitude /= UnitScaler.MULTIPLIER
            target += 1
        while magnitude < 1 and target > 0:
            magnitude *= UnitScaler.MULTIPLIER
            target -= 1

        if target == index:
            return base_unit, values
        factor = float(UnitScaler.MULTIPLIER) ** (target - index)
        return UnitScaler.PREFIXES[target] + family, [v / factor for v in values]

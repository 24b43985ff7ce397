###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

from .generate_bandwidth_report import (
    BandwidthReportConfig,
    BandwidthReportDriver,
    generate_bandwidth_report,
    get_output_filename,
    render_report,
)
from .generate_bins_report import generate_bins_report

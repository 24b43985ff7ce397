###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

from .bandwidth import CallData, CallsData, BandwidthColumns, compute_call, compute_all, summarize_df_bandwidth

__all__ = ['CallData', 'CallsData', 'BandwidthColumns', 'compute_call', 'compute_all', 'summarize_df_bandwidth']

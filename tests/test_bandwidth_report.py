###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import os
import subprocess
import sys
import tempfile
import pandas as pd
import pytest

from CommLens.Bandwidth.bandwidth import compute_all
from CommLens.Counts.counts import get_recv_count_file, get_send_count_file
from CommLens.Reporting.generate_bandwidth_report import (
    BandwidthReportConfig,
    BandwidthReportDriver,
    generate_bandwidth_report,
    get_output_filename,
    render_report,
)
from CommLens.Timings.timings import get_exec_timing_filename
from CommLens.errors import DegenerateDatasetError, MissingExecutionTimeError

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

COUNTS_TEMPLATE = """# Raw counters

Number of ranks: {comm_size}
Datatype size: {datatype_size}
Alltoallv calls 0-1

BEGINNING DATA
{data}
END DATA
"""

SEND_DATA = "Rank(s) 0: 400 600\nRank(s) 1: 1000 1000"
RECV_DATA = "Rank(s) 0: 200 300\nRank(s) 1: 0 0"

TIMINGS = """# Format version: 1
# Call 0
1.0
2.0
# Call 1
0.5
4.0
"""

EXPECTED_REPORT = (
    "# Call 0\n"
    "send BW (B/s)\treceive BW (B/s)\n"
    "1000.00\t500.00\n"
    "1000.00\t0.00\n"
    "\n"
    "# Call 1\n"
    "send BW (B/s)\treceive BW (B/s)\n"
    "2000.00\t1000.00\n"
    "500.00\t0.00\n"
    "\n"
)


def _write(directory, name, content):
    with open(os.path.join(directory, name), "w") as f:
        f.write(content)


def _write_instance(input_dir, lead_rank, comm_id, job_id=3, datatype_size=8, timings=TIMINGS,
                    comm_size=2, recv_datatype_size=None, recv_counts=None):
    """
    Write the counters and execution times of one communicator instance.

    The receive counters use `datatype_size` unless `recv_datatype_size` is
    given; `recv_counts` replaces the whole receive counters file.
    """
    if recv_datatype_size is None:
        recv_datatype_size = datatype_size
    if recv_counts is None:
        recv_counts = COUNTS_TEMPLATE.format(comm_size=comm_size, datatype_size=recv_datatype_size, data=RECV_DATA)
    _write(input_dir, f"alltoallv_comm_data_rank{lead_rank}.md",
           f"Communicator ID: {comm_id} - Lead rank: {lead_rank}\n")
    _write(input_dir, get_send_count_file(job_id, lead_rank),
           COUNTS_TEMPLATE.format(comm_size=comm_size, datatype_size=datatype_size, data=SEND_DATA))
    _write(input_dir, get_recv_count_file(job_id, lead_rank), recv_counts)
    if timings is not None:
        _write(input_dir, get_exec_timing_filename("alltoallv", lead_rank, comm_id, job_id), timings)


def _read(path):
    with open(path, encoding="utf-8") as f:
        return f.read()


class TestRenderReport:
    def test_block_format(self):
        calls = compute_all(1, 2, {0: {0: 100, 1: 0}}, {0: {0: 50, 1: 0}}, {0: {0: 1.0, 1: 1.0}})
        assert render_report(calls, 2) == (
            "# Call 0\n"
            "send BW (B/s)\treceive BW (B/s)\n"
            "100.00\t50.00\n"
            "0.00\t0.00\n"
            "\n"
        )

    def test_unscaled_values_are_rendered(self):
        calls = compute_all(1, 1, {0: {0: 123456789}}, {0: {0: 1}}, {0: {0: 1.0}})
        assert "123456789.00\t1.00\n" in render_report(calls, 1)

    def test_output_filename(self):
        assert get_output_filename(4) == "bandwidth-percall-comm4.md"


class TestBandwidthReportDriver:
    def test_end_to_end(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0)
            paths = generate_bandwidth_report(input_dir, output_dir)

            assert paths == [os.path.join(output_dir, "bandwidth-percall-comm0.md")]
            assert _read(paths[0]) == EXPECTED_REPORT

    def test_process_instance_returns_calls_data(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0)
            driver = BandwidthReportDriver(BandwidthReportConfig(input_dir=input_dir, output_dir=output_dir))
            _, calls_data = driver.process_instance(0, 0)

        assert len(calls_data) == 2
        assert dict(calls_data.call_data[1].send_data) == {0: 1000, 1: 2000}
        assert dict(calls_data.call_data[1].recv_rank_bw) == {0: 1000.0, 1: 0.0}

    def test_datatype_size_scaling(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0)
            driver = BandwidthReportDriver(BandwidthReportConfig(
                input_dir=input_dir, output_dir=output_dir, scale_counts_by_datatype_size=True,
            ))
            _, calls_data = driver.process_instance(0, 0)

        assert dict(calls_data.call_data[0].send_rank_bw) == {0: 8000.0, 1: 8000.0}

    @pytest.mark.parametrize("instance_args, message", [
        (dict(comm_size=0), "invalid number of ranks: 0"),
        (dict(datatype_size=0), "invalid send datatype size: 0"),
        (dict(recv_datatype_size=0), "invalid recv datatype size: 0"),
        # no receive block: the receive datatype size defaults to 0
        (dict(recv_counts="# Raw counters\n"), "invalid recv datatype size: 0"),
    ])
    def test_degenerate_dataset(self, instance_args, message):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0, **instance_args)
            with pytest.raises(DegenerateDatasetError, match=message):
                generate_bandwidth_report(input_dir, output_dir)
            assert os.listdir(output_dir) == []

    def test_degenerate_dataset_skipped_on_continue(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0, comm_size=0)
            _write_instance(input_dir, lead_rank=2, comm_id=1)
            paths = generate_bandwidth_report(input_dir, output_dir, continue_on_error=True)

            assert paths == [os.path.join(output_dir, "bandwidth-percall-comm2.md")]

    def test_missing_execution_time(self):
        truncated = TIMINGS[: TIMINGS.rindex("4.0")]
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0, timings=truncated)
            with pytest.raises(MissingExecutionTimeError):
                generate_bandwidth_report(input_dir, output_dir)
            assert os.listdir(output_dir) == []

    def test_fail_fast_by_default(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0, timings=None)
            _write_instance(input_dir, lead_rank=2, comm_id=1)
            with pytest.raises(FileNotFoundError):
                generate_bandwidth_report(input_dir, output_dir)
            assert os.listdir(output_dir) == []

    def test_continue_on_error(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0, timings=None)
            _write_instance(input_dir, lead_rank=2, comm_id=1)
            paths = generate_bandwidth_report(input_dir, output_dir, continue_on_error=True)

            assert paths == [os.path.join(output_dir, "bandwidth-percall-comm2.md")]
            assert _read(paths[0]) == EXPECTED_REPORT

    def test_csv_export(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0)
            csv_dir = os.path.join(output_dir, "csvs")
            generate_bandwidth_report(input_dir, output_dir, output_csvs_dir=csv_dir)

            df_long = pd.read_csv(os.path.join(csv_dir, "bandwidth_long.csv"))
            df_summary = pd.read_csv(os.path.join(csv_dir, "bandwidth_summary.csv"))

        assert len(df_long) == 4
        assert df_long["lead_rank"].unique().tolist() == [0]
        assert df_long["send BW (B/s)"].tolist() == [1000.0, 1000.0, 2000.0, 500.0]
        assert df_summary["call"].tolist() == [0, 1]
        assert df_summary["send BW (B/s)_mean"].tolist() == [1000.0, 1250.0]

    def test_xlsx_export(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0)
            xlsx_path = os.path.join(output_dir, "bandwidth.xlsx")
            generate_bandwidth_report(input_dir, output_dir, output_xlsx_path=xlsx_path)

            sheets = pd.read_excel(xlsx_path, sheet_name=None)
        assert set(sheets) == {"bandwidth_long", "bandwidth_summary"}
        assert len(sheets["bandwidth_long"]) == 4


def _run_cli(*args):
    cmd = [sys.executable, "-m", "CommLens.Reporting.generate_bandwidth_report", *args]
    return subprocess.run(cmd, capture_output=True, text=True, cwd=REPO_ROOT)


class TestCommandLine:
    def test_success(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0)
            result = _run_cli("--input_dir", input_dir, "--output_dir", output_dir)

            assert result.returncode == 0, result.stderr
            assert "Data successfully saved in" in result.stdout
            assert _read(os.path.join(output_dir, "bandwidth-percall-comm0.md")) == EXPECTED_REPORT

    def test_missing_input_dir(self):
        with tempfile.TemporaryDirectory() as output_dir:
            missing = os.path.join(output_dir, "does-not-exist")
            result = _run_cli("--input_dir", missing, "--output_dir", output_dir)
        assert result.returncode == 1
        assert f"ERROR: {missing} does not exist" in result.stdout

    def test_data_error(self):
        with tempfile.TemporaryDirectory() as input_dir, tempfile.TemporaryDirectory() as output_dir:
            _write_instance(input_dir, lead_rank=0, comm_id=0, datatype_size=0)
            result = _run_cli("--input_dir", input_dir, "--output_dir", output_dir)
        assert result.returncode == 1
        assert "ERROR: generate_bandwidth_report() failed: invalid send datatype size" in result.stdout

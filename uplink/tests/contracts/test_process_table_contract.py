"""
Contract tests for the psutil-backed process table.
"""

from unittest.mock import MagicMock, patch

import psutil

from uplink.process.table import ProcessInfo, PsutilProcessTable


def _proc(pid, name):
    proc = MagicMock()
    proc.info = {"pid": pid, "name": name}
    return proc


class TestListByName:

    @patch("uplink.process.table.psutil.process_iter")
    def test_matches_case_insensitively_and_ignores_exe(self, mock_iter):
        mock_iter.return_value = [
            _proc(10, "Icecast.exe"),
            _proc(11, "icecast2"),
            _proc(12, "ffmpeg"),
            _proc(13, None),
        ]

        found = PsutilProcessTable().list_processes_by_name("icecast", "icecast2")

        assert found == [ProcessInfo(10, "Icecast.exe"), ProcessInfo(11, "icecast2")]

    @patch("uplink.process.table.psutil.process_iter")
    def test_no_partial_matches(self, mock_iter):
        mock_iter.return_value = [_proc(20, "icecast-helper")]
        assert PsutilProcessTable().list_processes_by_name("icecast") == []


class TestLiveness:

    @patch("uplink.process.table.psutil.Process")
    def test_running_process_is_alive(self, mock_process):
        mock_process.return_value.status.return_value = psutil.STATUS_RUNNING
        assert PsutilProcessTable().is_alive(42)

    @patch("uplink.process.table.psutil.Process")
    def test_zombie_is_not_alive(self, mock_process):
        mock_process.return_value.status.return_value = psutil.STATUS_ZOMBIE
        assert not PsutilProcessTable().is_alive(42)

    @patch("uplink.process.table.psutil.Process")
    def test_missing_process_is_not_alive(self, mock_process):
        mock_process.side_effect = psutil.NoSuchProcess(42)
        assert not PsutilProcessTable().is_alive(42)

    @patch("uplink.process.table.psutil.Process")
    def test_foreign_process_counts_as_alive(self, mock_process):
        mock_process.return_value.status.side_effect = psutil.AccessDenied(42)
        assert PsutilProcessTable().is_alive(42)


class TestTerminate:

    @patch("uplink.process.table.psutil.Process")
    def test_graceful_and_forceful(self, mock_process):
        table = PsutilProcessTable()

        assert table.terminate(42)
        mock_process.return_value.terminate.assert_called_once()

        assert table.terminate(42, forceful=True)
        mock_process.return_value.kill.assert_called_once()

    @patch("uplink.process.table.psutil.Process")
    def test_already_gone_counts_as_delivered(self, mock_process):
        mock_process.side_effect = psutil.NoSuchProcess(42)
        assert PsutilProcessTable().terminate(42)

    @patch("uplink.process.table.psutil.Process")
    def test_access_denied_is_reported(self, mock_process):
        mock_process.return_value.terminate.side_effect = psutil.AccessDenied(42)
        assert not PsutilProcessTable().terminate(42)

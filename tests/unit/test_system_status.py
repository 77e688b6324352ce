"""
Unit tests for system status helpers
"""
from unittest.mock import Mock, patch

import pytest

from src.agent import system_status


def test_uptime_minutes():
    with patch('src.agent.system_status.psutil.boot_time', return_value=1000.0), \
            patch('src.agent.system_status.time.time', return_value=1000.0 + 90 * 60):
        assert system_status.uptime_minutes() == pytest.approx(90)
        assert system_status.uptime_days() == pytest.approx(90 / 1440)


def test_find_processes_ignores_case_and_exe():
    procs = [
        Mock(pid=1, info={'pid': 1, 'name': 'NCStreamer.exe'}),
        Mock(pid=2, info={'pid': 2, 'name': 'explorer.exe'}),
        Mock(pid=3, info={'pid': 3, 'name': None}),
    ]
    with patch('src.agent.system_status.psutil.process_iter', return_value=procs):
        found = system_status.find_processes('ncstreamer')

    assert [p.pid for p in found] == [1]


class TestRequestRestart:

    def test_windows(self):
        with patch('src.agent.system_status.sys.platform', 'win32'), \
                patch('src.agent.system_status.subprocess.run') as mock_run:
            system_status.request_restart(60)

        assert mock_run.call_args.args[0][:4] == ['shutdown', '/r', '/t', '60']

    def test_posix_rounds_up_to_minutes(self):
        with patch('src.agent.system_status.sys.platform', 'darwin'), \
                patch('src.agent.system_status.subprocess.run') as mock_run:
            system_status.request_restart(61)

        assert mock_run.call_args.args[0] == ['shutdown', '-r', '+2']


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

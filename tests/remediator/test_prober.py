"""
RMM Agent Remediator: Unit tests for the state prober
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import psutil
import pytest

from remediator.objects import ProbeError, ServiceStatus
from remediator.prober import probe_binary, probe_component, probe_service

PATCH_PREFIX = 'remediator.prober.'


def _win_service(mocker, status=None, side_effect=None):
    service = mocker.Mock()
    service.status.return_value = status
    return mocker.patch(
        PATCH_PREFIX + 'psutil.win_service_get', create=True,
        return_value=service, side_effect=side_effect,
    )


def test_probe_binary(tmp_path):
    binary = tmp_path / 'agent.exe'
    assert probe_binary(binary) is False
    binary.write_bytes(b'MZ')
    assert probe_binary(binary) is True
    assert probe_binary(tmp_path) is False


def test_probe_binary_access_error(mocker):
    mocker.patch(PATCH_PREFIX + 'Path.is_file', side_effect=PermissionError("denied"))
    with pytest.raises(ProbeError, match="Unable to query"):
        probe_binary('C:/agent.exe')


@pytest.mark.parametrize(
    'status, expected', [
        pytest.param('running', ServiceStatus.RUNNING, id="running"),
        pytest.param('stopped', ServiceStatus.STOPPED, id="stopped"),
        pytest.param('start_pending', ServiceStatus.UNKNOWN, id="start_pending"),
        pytest.param('paused', ServiceStatus.UNKNOWN, id="paused"),
    ])
def test_probe_service_status(status, expected, mocker):
    win_service_get = _win_service(mocker, status=status)
    assert probe_service('svc') == expected
    win_service_get.assert_called_once_with('svc')


def test_probe_service_absent(mocker):
    _win_service(mocker, side_effect=psutil.NoSuchProcess(pid=None, msg="service not found"))
    assert probe_service('svc') == ServiceStatus.ABSENT


@pytest.mark.parametrize(
    'error', [
        pytest.param(psutil.AccessDenied(msg="denied"), id="access_denied"),
        pytest.param(OSError("SCM unavailable"), id="os_error"),
    ])
def test_probe_service_errors(error, mocker):
    _win_service(mocker, side_effect=error)
    with pytest.raises(ProbeError):
        probe_service('svc')


def test_probe_service_unsupported_platform(mocker):
    mocker.patch(PATCH_PREFIX + 'psutil', spec=['NoSuchProcess', 'AccessDenied'])
    with pytest.raises(ProbeError, match="not available on this platform"):
        probe_service('svc')


def test_probe_component(tmp_path, mocker):
    binary = tmp_path / 'agent.exe'
    binary.write_bytes(b'MZ')
    statuses = {'svc1': ServiceStatus.RUNNING, 'svc2': ServiceStatus.ABSENT}
    mocker.patch(PATCH_PREFIX + 'probe_service', side_effect=lambda name: statuses[name])

    state = probe_component(binary, ['svc1', 'svc2'])

    assert state.binary_present
    assert state.binary_path == binary
    assert state.services == statuses
    assert state.service_status == ServiceStatus.ABSENT


def test_probe_component_nothing_installed(tmp_path, mocker):
    mocker.patch(PATCH_PREFIX + 'probe_service', return_value=ServiceStatus.ABSENT)
    state = probe_component(tmp_path / 'missing.exe', ['svc'])
    assert not state.binary_present
    assert state.services == {'svc': ServiceStatus.ABSENT}

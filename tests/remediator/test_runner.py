"""
RMM Agent Remediator: Unit tests for the installer runner
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from pathlib import Path

import pytest

from remediator.objects import ExecutionError, InstallerInvocation
from remediator.runner import InstallerRunner, build_agent_arguments

PATCH_PREFIX = 'remediator.runner.'


@pytest.fixture
def mock_popen(mocker):
    mock_popen = mocker.patch(PATCH_PREFIX + 'subprocess.Popen')
    mock_popen.return_value.wait.return_value = 0
    return mock_popen


def test_build_agent_arguments(params):
    assert build_agent_arguments(params) == [
        '/s',
        '/v" /qn CUSTOMERID=123 CUSTOMERSPECIFIC=1 '
        'REGISTRATION_TOKEN=5f0c9a1e-3b8d-4c2a-9e71-2d6f4a8b0c13 '
        'SERVERPROTOCOL=HTTPS SERVERADDRESS=rmm.example.com SERVERPORT=443 "',
    ]


def test_build_agent_arguments_http(params):
    assert build_agent_arguments(params, protocol='HTTP', port=80) == [
        '/s',
        '/v" /qn CUSTOMERID=123 CUSTOMERSPECIFIC=1 '
        'REGISTRATION_TOKEN=5f0c9a1e-3b8d-4c2a-9e71-2d6f4a8b0c13 SERVERADDRESS=rmm.example.com "',
    ]


def test_build_command_windows(platform_win):
    invocation = InstallerInvocation(Path('C:/Temp/remediator-x/Agent Setup.exe'), ['/s', '/v" /qn "'])
    assert InstallerRunner(platform_win).build_command(invocation) == \
        '"C:/Temp/remediator-x/Agent Setup.exe" /s /v" /qn "'


def test_build_command_other(platform_linux):
    invocation = InstallerInvocation(Path('/tmp/setup.sh'), ['--quiet'])
    assert InstallerRunner(platform_linux).build_command(invocation) == ['/tmp/setup.sh', '--quiet']


def test_run(platform_linux, mock_popen):
    invocation = InstallerRunner(platform_linux).run('/tmp/setup.sh', ['--quiet'])

    mock_popen.assert_called_once_with(['/tmp/setup.sh', '--quiet'], shell=False)
    assert invocation.exit_code == 0
    assert invocation.path == Path('/tmp/setup.sh')
    assert invocation.arguments == ['--quiet']


def test_run_nonzero_exit_code(platform_linux, mock_popen, caplog):
    mock_popen.return_value.wait.return_value = 1603
    invocation = InstallerRunner(platform_linux).run('/tmp/setup.sh', [])
    assert invocation.exit_code == 1603
    assert "exited with code 1603" in caplog.text


def test_run_launch_failure(platform_linux, mock_popen):
    mock_popen.side_effect = FileNotFoundError("No such file")
    with pytest.raises(ExecutionError, match="Could not launch the installer"):
        InstallerRunner(platform_linux).run('/tmp/missing.exe', [])


def test_run_masks_secrets(platform_win, mock_popen, params, caplog):
    arguments = build_agent_arguments(params)
    InstallerRunner(platform_win).run('C:/Temp/WindowsAgentSetup.exe', arguments, secrets=[params.registration_token])

    command = mock_popen.call_args[0][0]
    assert str(params.registration_token) in command
    assert str(params.registration_token) not in caplog.text
    assert 'REGISTRATION_TOKEN=********************************0c13' in caplog.text


@pytest.mark.parametrize(
    'exit_code, expected', [
        pytest.param(0, True, id="success"),
        pytest.param(3010, True, id="reboot_required"),
        pytest.param(1603, False, id="fatal"),
        pytest.param(None, False, id="not_run"),
    ])
def test_succeeded(exit_code, expected, platform_win):
    runner = InstallerRunner(platform_win, [0, 3010])
    invocation = InstallerInvocation(Path('setup.exe'), [], exit_code)
    assert runner.succeeded(invocation) is expected

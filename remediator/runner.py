"""
RMM Agent Remediator: Runs installers silently and reports their exit codes.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from gevent import subprocess

from .helpers import mask_secret
from .objects import ExecutionError, InstallerInvocation

if TYPE_CHECKING:
    from typing import Iterable, Sequence, Union

    from .objects import Platform
    from .validation import InvocationParameters

HTTPS_PROTOCOL = 'HTTPS'

logger = logging.getLogger(__name__)


def build_agent_arguments(params: InvocationParameters, protocol: str = HTTPS_PROTOCOL, port: int = 443) -> list[str]:
    """
    Builds the Agent installer's silent-install switches. The MSI properties are passed
    through the bootstrapper's /v switch, so their layout must stay exactly as it is.
    """
    properties = [
        f'CUSTOMERID={params.customer_id}',
        'CUSTOMERSPECIFIC=1',
        f'REGISTRATION_TOKEN={params.registration_token}',
    ]
    if protocol == HTTPS_PROTOCOL:
        properties += [
            f'SERVERPROTOCOL={HTTPS_PROTOCOL}',
            f'SERVERADDRESS={params.server}',
            f'SERVERPORT={port}',
        ]
    else:
        properties.append(f'SERVERADDRESS={params.server}')
    return ['/s', f'/v" /qn {" ".join(properties)} "']


class InstallerRunner:
    """Launches an installer, blocking until it exits"""

    def __init__(self, platform: Platform, success_exit_codes: Iterable[int] = (0,)):
        self._platform = platform
        self._success_exit_codes = frozenset(success_exit_codes)

    def run(
            self, path: Union[str, Path], arguments: Sequence[str], secrets: Iterable[object] = ()
    ) -> InstallerInvocation:
        """Run the installer, returning the invocation with its exit code"""
        invocation = InstallerInvocation(path=Path(path), arguments=list(arguments))
        command = self.build_command(invocation)
        logger.info("Running installer: %s", self._loggable(command, secrets))
        try:
            proc = subprocess.Popen(command, shell=False)
        except OSError as ex:
            raise ExecutionError(f"Could not launch the installer at '{invocation.path}': {ex}") from ex
        invocation.exit_code = proc.wait()
        if invocation.exit_code == 0:
            logger.info("Installer '%s' completed successfully", invocation.path.name)
        else:
            logger.warning("Installer '%s' exited with code %d", invocation.path.name, invocation.exit_code)
        return invocation

    def succeeded(self, invocation: InstallerInvocation) -> bool:
        return invocation.exit_code in self._success_exit_codes

    def build_command(self, invocation: InstallerInvocation) -> Union[str, list[str]]:
        """
        On Windows the command line is passed to CreateProcess as-is, since re-quoting
        would break the nested quotes of the /v switch.
        """
        if self._platform.is_windows:
            return ' '.join([f'"{invocation.path}"', *invocation.arguments])
        return [str(invocation.path), *invocation.arguments]

    @staticmethod
    def _loggable(command: Union[str, list[str]], secrets: Iterable[object]) -> str:
        text = command if isinstance(command, str) else ' '.join(command)
        for secret in secrets:
            text = text.replace(str(secret), mask_secret(secret))
        return text

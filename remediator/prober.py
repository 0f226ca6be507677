"""
RMM Agent Remediator: Probes the install and run state of managed components.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from .objects import ComponentState, ProbeError, ServiceStatus

if TYPE_CHECKING:
    from typing import Iterable, Union

# psutil service status strings
PSUTIL_STATUS_MAP = {
    'running': ServiceStatus.RUNNING,
    'stopped': ServiceStatus.STOPPED,
}

logger = logging.getLogger(__name__)


def probe_binary(binary_path: Union[str, Path]) -> bool:
    """Determine whether the component's executable is present. Absence is not an error."""
    try:
        return Path(binary_path).is_file()
    except OSError as ex:
        raise ProbeError(f"Unable to query '{binary_path}': {ex}") from ex


def probe_service(service_name: str) -> ServiceStatus:
    """Query the service manager for a service's status. A missing service is ABSENT, not an error."""
    win_service_get = getattr(psutil, 'win_service_get', None)
    if win_service_get is None:
        raise ProbeError("The Windows service manager is not available on this platform")
    try:
        status = win_service_get(service_name).status()
    except psutil.NoSuchProcess:
        return ServiceStatus.ABSENT
    except psutil.AccessDenied as ex:
        raise ProbeError(f"Access denied querying service '{service_name}': {ex}") from ex
    except OSError as ex:
        raise ProbeError(f"Unable to query service '{service_name}': {ex}") from ex
    return PSUTIL_STATUS_MAP.get(status, ServiceStatus.UNKNOWN)


def probe_component(binary_path: Union[str, Path], service_names: Iterable[str]) -> ComponentState:
    """Report presence of the executable and the status of each named service"""
    binary_present = probe_binary(binary_path)
    services = {name: probe_service(name) for name in service_names}
    state = ComponentState(binary_path=Path(binary_path), binary_present=binary_present, services=services)
    logger.debug(
        "Probed '%s': binary_present=%s services=%s",
        binary_path, binary_present, {name: str(status) for name, status in services.items()}
    )
    return state

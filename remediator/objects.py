"""
RMM Agent Remediator: Helper classes and errors used by other submodules.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import dataclasses
import enum
from pathlib import Path
from typing import Optional

from .helpers import normalise_version


class RemediationError(Exception):
    """Base class for errors that abort a component's procedure"""
    pass


class ValidationError(RemediationError):
    """An invocation parameter is invalid"""

    def __init__(self, parameter: str, message: str):
        super().__init__(f"Invalid parameter '{parameter}': {message}")
        self.parameter = parameter


class PrivilegeError(RemediationError):
    """The process is not running with administrative rights"""
    pass


class ProbeError(RemediationError):
    """The filesystem or service manager could not be queried"""
    pass


class ResolutionError(RemediationError):
    """An installer could not be obtained"""
    pass


class NoCompatibleVersionError(ResolutionError):
    """No version range matches the installed Agent version"""
    pass


class AmbiguousVersionRangeError(ResolutionError):
    """More than one version range matches the installed Agent version"""
    pass


class HttpError(ResolutionError):
    """An HTTP transfer failed or returned a non-2xx status"""
    pass


class ExecutionError(RemediationError):
    """An installer process could not be launched"""
    pass


class ServiceStartError(RemediationError):
    """A service could not be started (or stopped)"""
    pass


class ConfigEditError(RemediationError):
    """A set of XML setting changes could not be applied"""
    pass


class ServiceStatus(enum.Enum):
    ABSENT = 'Absent'
    STOPPED = 'Stopped'
    RUNNING = 'Running'
    UNKNOWN = 'Unknown'

    def __str__(self):
        return self.value


class InstallReason(enum.Enum):
    NOT_INSTALLED = 'NotInstalled'
    SERVICE_MISSING = 'ServiceMissing'
    FORCED_BY_CALLER = 'ForcedByCaller'

    def __str__(self):
        return self.value


class FailureReason(enum.Enum):
    VALIDATION = 'Validation'
    PROBE = 'Probe'
    RESOLUTION = 'Resolution'
    EXECUTION = 'Execution'
    INSTALLER_EXIT_CODE = 'InstallerExitCode'
    SERVICE_START = 'ServiceStart'
    CONFIG_EDIT = 'ConfigEdit'

    def __str__(self):
        return self.value


@dataclasses.dataclass
class ComponentState:
    """Install/run state of a managed component, derived fresh on each run"""
    binary_path: Path
    binary_present: bool
    services: dict[str, ServiceStatus] = dataclasses.field(default_factory=dict)

    @property
    def service_status(self) -> ServiceStatus:
        """Aggregate status of all required services"""
        statuses = set(self.services.values())
        if not statuses or ServiceStatus.ABSENT in statuses:
            return ServiceStatus.ABSENT
        if ServiceStatus.STOPPED in statuses:
            return ServiceStatus.STOPPED
        if statuses == {ServiceStatus.RUNNING}:
            return ServiceStatus.RUNNING
        return ServiceStatus.UNKNOWN

    def services_with_status(self, status: ServiceStatus) -> list[str]:
        return [name for name, svc_status in self.services.items() if svc_status == status]


@dataclasses.dataclass(frozen=True)
class InstallDecision:
    should_install: bool
    reason: Optional[InstallReason] = None


@dataclasses.dataclass(frozen=True)
class VersionRange:
    """A named Agent version interval and the companion installers valid for it"""
    name: str
    minimum: tuple[int, ...]
    maximum: tuple[int, ...]
    installers_by_type: dict[str, str] = dataclasses.field(default_factory=dict, hash=False)

    def contains(self, version: tuple[int, ...]) -> bool:
        """Strict containment, versions on either boundary do not match"""
        return normalise_version(self.minimum) < normalise_version(version) < normalise_version(self.maximum)


@dataclasses.dataclass
class InstallerInvocation:
    path: Path
    arguments: list[str]
    exit_code: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class StepResult:
    """The outcome of a component procedure: success, or a tagged failure"""
    component: str
    success: bool
    reason: Optional[FailureReason] = None
    message: str = ''

    @classmethod
    def ok(cls, component: str, message: str = '') -> StepResult:
        return cls(component=component, success=True, message=message)

    @classmethod
    def failed(cls, component: str, reason: FailureReason, message: str) -> StepResult:
        return cls(component=component, success=False, reason=reason, message=message)

    def __str__(self) -> str:
        if self.success:
            return f"{self.component}: OK" + (f" ({self.message})" if self.message else '')
        return f"{self.component}: FAILED [{self.reason}] {self.message}"


@dataclasses.dataclass
class Platform:
    system: str
    architecture: str
    windows_version: tuple

    @property
    def is_windows(self) -> bool:
        return bool(self.windows_version)

    def __str__(self) -> str:
        base_str = f"{self.system} ({self.architecture})"
        if self.is_windows:
            return f"{base_str} {self.windows_version}"
        return base_str

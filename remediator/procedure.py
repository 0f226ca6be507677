"""
RMM Agent Remediator: Component procedures (check, decide, remediate).
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING

from .objects import (
    ConfigEditError,
    ExecutionError,
    FailureReason,
    ProbeError,
    RemediationError,
    ResolutionError,
    ServiceStartError,
    ServiceStatus,
    StepResult,
    ValidationError,
)
from .planner import decide
from .prober import probe_component
from .runner import build_agent_arguments
from .xmlconfig import apply_settings

if TYPE_CHECKING:
    from typing import Iterable

    from .config import RemediatorConfig
    from .objects import ComponentState, InstallerInvocation
    from .resolver import ArtifactResolver
    from .runner import InstallerRunner
    from .services import ServiceStarter
    from .validation import InvocationParameters

COMPONENT_AGENT = 'agent'
COMPONENT_TAKE_CONTROL = 'take-control'
COMPONENT_ALL = 'all'
COMPONENT_CHOICES = (COMPONENT_AGENT, COMPONENT_TAKE_CONTROL, COMPONENT_ALL)

# Checked in order, so subclasses must come before their parents
FAILURE_REASONS = (
    (ValidationError, FailureReason.VALIDATION),
    (ProbeError, FailureReason.PROBE),
    (ResolutionError, FailureReason.RESOLUTION),
    (ExecutionError, FailureReason.EXECUTION),
    (ServiceStartError, FailureReason.SERVICE_START),
    (ConfigEditError, FailureReason.CONFIG_EDIT),
)

logger = logging.getLogger(__name__)


def failure_reason(ex: RemediationError) -> FailureReason:
    for error_class, reason in FAILURE_REASONS:
        if isinstance(ex, error_class):
            return reason
    return FailureReason.EXECUTION


class ComponentProcedure:
    """Base procedure: any RemediationError aborts the procedure and becomes a tagged failure"""

    NAME: str = ''

    def __init__(
            self,
            config: RemediatorConfig,
            resolver: ArtifactResolver,
            runner: InstallerRunner,
            starter: ServiceStarter,
    ):
        self._config = config
        self._resolver = resolver
        self._runner = runner
        self._starter = starter

    def run(self, params: InvocationParameters) -> StepResult:
        logger.info("%s: starting procedure", self.NAME)
        try:
            result = self._run(params)
        except RemediationError as ex:
            result = StepResult.failed(self.NAME, failure_reason(ex), str(ex))
        except Exception as ex:
            # Never let one component stop the others
            logger.error(traceback.format_exc())
            result = StepResult.failed(self.NAME, FailureReason.EXECUTION, f"unexpected error: {ex!r}")
        if result.success:
            logger.info("%s", result)
        else:
            logger.error("%s", result)
        return result

    def _run(self, params: InvocationParameters) -> StepResult:
        raise NotImplementedError

    def _probe(self, binary_path: str, service_names: Iterable[str]) -> ComponentState:
        state = probe_component(binary_path, service_names)
        logger.info(
            "%s: binary %s, services %s", self.NAME,
            'present' if state.binary_present else 'absent', state.service_status,
        )
        return state

    def _start_stopped_services(self, state: ComponentState) -> int:
        """Starts present-but-stopped services, returning how many were started"""
        for service_name in state.services_with_status(ServiceStatus.UNKNOWN):
            logger.warning(
                "%s: service '%s' is pending or paused, it will not be started", self.NAME, service_name
            )
        started = 0
        for service_name in state.services_with_status(ServiceStatus.STOPPED):
            if self._starter.start(service_name):
                started += 1
        return started

    def _check_invocation(self, invocation: InstallerInvocation, message: str) -> StepResult:
        if self._runner.succeeded(invocation):
            return StepResult.ok(self.NAME, message)
        failure = f"installer '{invocation.path.name}' exited with code {invocation.exit_code}"
        if self._config.installer.strict_exit_codes:
            return StepResult.failed(self.NAME, FailureReason.INSTALLER_EXIT_CODE, failure)
        logger.warning("%s: %s (not treated as a failure, strict_exit_codes is off)", self.NAME, failure)
        return StepResult.ok(self.NAME, f"{message}, {failure}")


class AgentProcedure(ComponentProcedure):
    """Installs or repairs the RMM Agent"""

    NAME = 'Agent'

    def _run(self, params: InvocationParameters) -> StepResult:
        agent_config = self._config.agent
        state = self._probe(agent_config.binary_path, agent_config.service_names)
        decision = decide(state, params.force_reinstall)
        if not decision.should_install:
            started = self._start_stopped_services(state)
            return StepResult.ok(self.NAME, f"already installed, {started} service(s) started")

        logger.info("%s: installing (%s)", self.NAME, decision.reason)
        arguments = build_agent_arguments(params, agent_config.protocol, agent_config.port)
        with self._resolver.agent_installer(params) as installer_path:
            invocation = self._runner.run(installer_path, arguments, secrets=[params.registration_token])
        return self._check_invocation(invocation, f"installed ({decision.reason})")


class TakeControlProcedure(ComponentProcedure):
    """Installs or repairs the Take Control component, version matched to the installed Agent"""

    NAME = 'Take Control'

    def _run(self, params: InvocationParameters) -> StepResult:
        tc_config = self._config.take_control
        state = self._probe(tc_config.binary_path, tc_config.service_names)
        decision = decide(state, params.force_reinstall)
        if not decision.should_install:
            started = self._start_stopped_services(state)
            return StepResult.ok(self.NAME, f"already installed, {started} service(s) started")

        logger.info("%s: installing (%s)", self.NAME, decision.reason)
        with self._resolver.take_control_installer() as installer_path:
            invocation = self._runner.run(installer_path, tc_config.installer_arguments)
        return self._check_invocation(invocation, f"installed ({decision.reason})")


class ReRegistrationProcedure(ComponentProcedure):
    """
    Re-registers an installed Agent by editing its XML configuration while its services are stopped.
    All settings are applied or none are, and the services are started again either way.
    """

    NAME = 'Agent re-registration'

    def _run(self, params: InvocationParameters) -> StepResult:
        agent_config = self._config.agent
        rereg_config = self._config.reregistration
        state = self._probe(agent_config.binary_path, agent_config.service_names)
        if decide(state).should_install:
            return StepResult.failed(
                self.NAME, FailureReason.PROBE,
                "the Agent is not fully installed, run an install instead of a re-registration",
            )

        changes = rereg_config.setting_changes(params)
        try:
            for service_name in reversed(agent_config.service_names):
                self._starter.stop(service_name)
            count = apply_settings(rereg_config.config_dir, changes)
        except RemediationError:
            self._restore_services()
            raise
        for service_name in agent_config.service_names:
            self._starter.start(service_name)
        return StepResult.ok(self.NAME, f"{count} setting(s) changed")

    def _restore_services(self):
        """Best effort start of every Agent service after a failure, keeping the original error"""
        for service_name in self._config.agent.service_names:
            try:
                self._starter.start(service_name)
            except RemediationError as ex:
                logger.error("%s: unable to restart service '%s': %s", self.NAME, service_name, ex)


def build_procedures(
        config: RemediatorConfig,
        resolver: ArtifactResolver,
        runner: InstallerRunner,
        starter: ServiceStarter,
        component: str = COMPONENT_ALL,
        reregister: bool = False,
) -> list[ComponentProcedure]:
    """Returns the procedures to run, in order. Take Control follows the Agent it is matched to."""
    if component not in COMPONENT_CHOICES:
        raise ValueError(f"Unknown component '{component}' (choices = {', '.join(COMPONENT_CHOICES)})")
    classes: list[type[ComponentProcedure]] = []
    if component in (COMPONENT_AGENT, COMPONENT_ALL):
        classes.append(ReRegistrationProcedure if reregister else AgentProcedure)
    if component in (COMPONENT_TAKE_CONTROL, COMPONENT_ALL):
        classes.append(TakeControlProcedure)
    return [cls(config, resolver, runner, starter) for cls in classes]


def run_procedures(procedures: Iterable[ComponentProcedure], params: InvocationParameters) -> list[StepResult]:
    """Runs procedures strictly in sequence. A failed component does not stop the others."""
    return [procedure.run(params) for procedure in procedures]

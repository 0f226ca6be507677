"""
RMM Agent Remediator: Starts (and stops) Windows services, blocking until the change is confirmed.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import gevent

from .objects import ServiceStartError, ServiceStatus
from .prober import probe_service

if TYPE_CHECKING:
    from .config import ServicesConfig

logger = logging.getLogger(__name__)


def _control_service(action: str, service_name: str):
    """Sends a start/stop request to the service control manager"""
    try:
        import pywintypes
        import win32serviceutil
    except ImportError as ex:
        raise ServiceStartError(f"Controlling services requires pywin32: {ex}") from ex

    control_fn = win32serviceutil.StartService if action == 'start' else win32serviceutil.StopService
    try:
        control_fn(service_name)
    except pywintypes.error as ex:
        raise ServiceStartError(f"Failed to {action} service '{service_name}': {ex}") from ex


class ServiceStarter:
    """Starts stopped services. No retries: a failed start is reported to the caller."""

    def __init__(self, config: ServicesConfig):
        self._config = config

    def start(self, service_name: str) -> bool:
        """Start the service if it exists and isn't running. Returns True if a start was requested."""
        status = probe_service(service_name)
        if status == ServiceStatus.ABSENT:
            raise ServiceStartError(f"Service '{service_name}' does not exist")
        if status == ServiceStatus.RUNNING:
            logger.debug("Service '%s' is already running", service_name)
            return False
        logger.info("Starting service '%s' (currently %s)", service_name, status)
        _control_service('start', service_name)
        self._wait_for_status(service_name, ServiceStatus.RUNNING)
        logger.info("Service '%s' is running", service_name)
        return True

    def stop(self, service_name: str) -> bool:
        """Stop the service if it exists and isn't stopped. Returns True if a stop was requested."""
        status = probe_service(service_name)
        if status == ServiceStatus.ABSENT:
            raise ServiceStartError(f"Service '{service_name}' does not exist")
        if status == ServiceStatus.STOPPED:
            logger.debug("Service '%s' is already stopped", service_name)
            return False
        logger.info("Stopping service '%s' (currently %s)", service_name, status)
        _control_service('stop', service_name)
        self._wait_for_status(service_name, ServiceStatus.STOPPED)
        logger.info("Service '%s' is stopped", service_name)
        return True

    def restart(self, service_name: str):
        self.stop(service_name)
        self.start(service_name)

    def _wait_for_status(self, service_name: str, wanted: ServiceStatus):
        deadline = time.monotonic() + self._config.start_timeout
        while True:
            gevent.sleep(self._config.poll_interval)
            status = probe_service(service_name)
            if status == wanted:
                return
            if status == ServiceStatus.ABSENT:
                raise ServiceStartError(f"Service '{service_name}' disappeared while waiting for it to be {wanted}")
            if wanted == ServiceStatus.RUNNING and status == ServiceStatus.STOPPED:
                raise ServiceStartError(f"Service '{service_name}' stopped again after the start request")
            if time.monotonic() >= deadline:
                raise ServiceStartError(
                    f"Timed out after {self._config.start_timeout}s waiting for service '{service_name}' "
                    f"to be {wanted} (currently {status})"
                )

"""
RMM Agent Remediator: Decides whether a component needs (re)installing.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import logging

from .objects import ComponentState, InstallDecision, InstallReason, ServiceStatus

logger = logging.getLogger(__name__)


def decide(state: ComponentState, force: bool = False) -> InstallDecision:
    """
    Install when forced, when the binary is absent or when any required service is absent.
    A stopped service is not a reinstall trigger, it is started instead.
    """
    if force:
        decision = InstallDecision(True, InstallReason.FORCED_BY_CALLER)
    elif not state.binary_present:
        decision = InstallDecision(True, InstallReason.NOT_INSTALLED)
    elif state.services_with_status(ServiceStatus.ABSENT):
        decision = InstallDecision(True, InstallReason.SERVICE_MISSING)
    else:
        decision = InstallDecision(False)
    logger.debug("Install decision for '%s': %s", state.binary_path, decision)
    return decision

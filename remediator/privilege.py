"""
RMM Agent Remediator: Administrative rights precondition
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import ctypes
import logging
import os
import sys

from .objects import PrivilegeError

REMEDIATION_HINT = (
    "Re-run from an elevated prompt (right-click > 'Run as administrator') "
    "or from a management tool running as SYSTEM."
)

logger = logging.getLogger(__name__)


def is_admin() -> bool:
    """Determine whether the current process has administrative rights"""
    if sys.platform.startswith('win'):
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError) as ex:
            logger.warning("Unable to determine administrative rights: %s", ex)
            return False
    return os.geteuid() == 0


def require_admin():
    """Raises a PrivilegeError (never relaunches) when not running with administrative rights"""
    if not is_admin():
        raise PrivilegeError(f"Administrative rights are required. {REMEDIATION_HINT}")
    logger.debug("Running with administrative rights")

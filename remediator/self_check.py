"""
RMM Agent Remediator: Self check platform and version variables
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import platform

from .objects import Platform


def get_platform() -> Platform:
    """Determine the system platform"""
    system = platform.system()
    windows_version = platform.win32_ver() if system == 'Windows' else tuple()
    return Platform(
        system=system,
        architecture=platform.machine(),
        windows_version=windows_version
    )


def format_platform_info(name: str, version: str, is_windows: bool) -> str:
    """Return a formatted string of platform summary info"""
    if is_windows:
        os_version = platform.version()
        os_description = platform.win32_edition()
    else:
        os_version = platform.release()
        os_description = platform.version()

    return (
        f"{name} {version}; hostname={platform.node()}"
        f" osname={platform.system()} osvers={os_version} desc={os_description}"
    )

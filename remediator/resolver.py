"""
RMM Agent Remediator: Obtains installer binaries for the managed components.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from .helpers import format_version
from .httpclient import HttpTransfer
from .manifest import parse_manifest, resolve_installer_uri
from .objects import ResolutionError

if TYPE_CHECKING:
    from typing import Iterator, Optional, Union

    from .config import RemediatorConfig
    from .validation import InvocationParameters

TEMP_DIR_PREFIX = 'remediator-'

logger = logging.getLogger(__name__)


def get_file_version(path: Union[str, Path]) -> tuple[int, ...]:
    """Reads the file version from an executable's version resource (Windows only)"""
    try:
        import pywintypes
        import win32api
    except ImportError as ex:
        raise ResolutionError(f"Reading file versions requires pywin32: {ex}") from ex

    try:
        info = win32api.GetFileVersionInfo(str(path), '\\')
    except pywintypes.error as ex:
        raise ResolutionError(f"Unable to read the file version of '{path}': {ex}") from ex
    ms, ls = info['FileVersionMS'], info['FileVersionLS']
    return ms >> 16, ms & 0xFFFF, ls >> 16, ls & 0xFFFF


class ArtifactResolver:
    """
    Resolves installers as context managers yielding a local path.
    Anything downloaded or copied lives in a temp directory removed on exit, whatever the
    outcome of the install. Caller supplied files are never removed.
    """

    def __init__(self, config: RemediatorConfig, http: Optional[HttpTransfer] = None):
        self._config = config
        self._http = http or HttpTransfer(config.http)

    @contextlib.contextmanager
    def agent_installer(self, params: InvocationParameters) -> Iterator[Path]:
        """Caller supplied file, else the LAN share, else an HTTPS download"""
        if params.local_file:
            logger.info("Using caller supplied Agent installer '%s'", params.local_file)
            yield Path(params.local_file)
            return

        agent_config = self._config.agent
        with self._temp_dir() as temp_dir:
            destination = temp_dir / agent_config.installer_name
            if not self._copy_from_share(agent_config.network_share_path, destination):
                url = agent_config.installer_download_url(params)
                logger.info("Downloading Agent installer from '%s'", url)
                self._http.download(url, destination)
            yield destination

    @contextlib.contextmanager
    def take_control_installer(self) -> Iterator[Path]:
        """Downloads the Take Control installer matching the installed Agent's version"""
        tc_config = self._config.take_control
        agent_version = get_file_version(self._config.agent.binary_path)
        logger.info("Installed Agent version is %s", format_version(agent_version))

        logger.info("Fetching version range manifest from '%s'", tc_config.manifest_url)
        ranges = parse_manifest(self._http.fetch(tc_config.manifest_url))
        url = resolve_installer_uri(ranges, agent_version, tc_config.installer_type)

        with self._temp_dir() as temp_dir:
            destination = temp_dir / tc_config.installer_name
            logger.info("Downloading Take Control installer from '%s'", url)
            self._http.download(url, destination)
            yield destination

    @contextlib.contextmanager
    def _temp_dir(self) -> Iterator[Path]:
        try:
            temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX, dir=self._config.installer.temp_dir))
        except OSError as ex:
            raise ResolutionError(f"Unable to create a temporary directory: {ex}") from ex
        try:
            yield temp_dir
        finally:
            logger.debug("Removing temporary directory '%s'", temp_dir)
            shutil.rmtree(temp_dir, ignore_errors=True)

    @staticmethod
    def _copy_from_share(share_path: Optional[str], destination: Path) -> bool:
        """Copies the installer from a LAN share, returning False when the share isn't usable"""
        if not share_path:
            return False
        source = Path(os.path.expandvars(share_path))
        try:
            if not source.is_file():
                logger.debug("Agent installer not found on share '%s'", source)
                return False
            shutil.copy2(source, destination)
        except OSError as ex:
            logger.warning("Unable to copy Agent installer from share '%s': %s", source, ex)
            return False
        logger.info("Copied Agent installer from share '%s'", source)
        return True

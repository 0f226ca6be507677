"""
RMM Agent Remediator: Version range manifest parsing and resolution.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved

The manifest maps Agent version intervals to companion installers:

    <VersionRanges>
      <Range Name="2024.x" Minimum="2024.1.0.0" Maximum="2025.1.0.0">
        <Installer Type="TakeControlStandalone" Uri="https://example.com/tc.exe"/>
      </Range>
    </VersionRanges>
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ElementTree
from typing import TYPE_CHECKING

from .helpers import format_version, parse_version
from .objects import (
    AmbiguousVersionRangeError,
    NoCompatibleVersionError,
    ResolutionError,
    VersionRange,
)

if TYPE_CHECKING:
    from typing import Sequence, Union

RANGE_TAG = 'Range'
INSTALLER_TAG = 'Installer'

logger = logging.getLogger(__name__)


def parse_manifest(document: Union[str, bytes]) -> list[VersionRange]:
    """Parses a manifest document into its version ranges, in document order"""
    try:
        root = ElementTree.fromstring(document)
    except ElementTree.ParseError as ex:
        raise ResolutionError(f"Version range manifest could not be parsed: {ex}") from ex

    ranges = []
    for index, range_el in enumerate(root.iter(RANGE_TAG)):
        name = range_el.get('Name') or f'range-{index}'
        try:
            minimum = parse_version(range_el.get('Minimum', ''))
            maximum = parse_version(range_el.get('Maximum', ''))
        except ValueError as ex:
            raise ResolutionError(f"Version range '{name}' has invalid bounds: {ex}") from ex

        installers = {}
        for installer_el in range_el.iter(INSTALLER_TAG):
            installer_type, uri = installer_el.get('Type'), installer_el.get('Uri')
            if not installer_type or not uri:
                raise ResolutionError(f"Version range '{name}' has an installer without a Type or Uri")
            installers[installer_type] = uri
        ranges.append(VersionRange(name=name, minimum=minimum, maximum=maximum, installers_by_type=installers))

    if not ranges:
        raise ResolutionError("Version range manifest contains no ranges")
    logger.debug("Parsed %d version range(s) from manifest", len(ranges))
    return ranges


def select_range(ranges: Sequence[VersionRange], version: Union[str, tuple[int, ...]]) -> VersionRange:
    """
    Returns the only range where minimum < version < maximum.
    Overlapping ranges that both match are an error rather than a guess.
    """
    version = parse_version(version)
    matches = [version_range for version_range in ranges if version_range.contains(version)]
    if not matches:
        raise NoCompatibleVersionError(f"No compatible version range for Agent version {format_version(version)}")
    if len(matches) > 1:
        names = ', '.join(f"'{m.name}'" for m in matches)
        raise AmbiguousVersionRangeError(
            f"Agent version {format_version(version)} matches {len(matches)} version ranges: {names}"
        )
    return matches[0]


def resolve_installer_uri(
        ranges: Sequence[VersionRange], version: Union[str, tuple[int, ...]], installer_type: str
) -> str:
    """Returns the URI of the installer of the given type from the range matching version"""
    version_range = select_range(ranges, version)
    try:
        uri = version_range.installers_by_type[installer_type]
    except KeyError:
        raise ResolutionError(
            f"Version range '{version_range.name}' has no installer of type '{installer_type}'"
        )
    logger.info(
        "Agent version %s matches range '%s' (%s - %s), installer '%s'",
        format_version(parse_version(version)), version_range.name,
        format_version(version_range.minimum), format_version(version_range.maximum), uri,
    )
    return uri

"""
RMM Agent Remediator: Unit tests for version range manifests
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import pytest

from remediator.manifest import parse_manifest, resolve_installer_uri, select_range
from remediator.objects import (
    AmbiguousVersionRangeError,
    NoCompatibleVersionError,
    ResolutionError,
    VersionRange,
)

INSTALLER_TYPE = 'TakeControlStandalone'


def _single_range_manifest(minimum: str, maximum: str) -> str:
    return (
        '<VersionRanges>'
        f'<Range Name="only" Minimum="{minimum}" Maximum="{maximum}">'
        f'<Installer Type="Other" Uri="https://cdn.example.com/other.exe"/>'
        f'<Installer Type="{INSTALLER_TYPE}" Uri="https://cdn.example.com/tc.exe"/>'
        '</Range>'
        '</VersionRanges>'
    )


@pytest.fixture
def manifest_ranges(resources_path):
    return parse_manifest((resources_path / 'manifest.xml').read_bytes())


def test_parse_manifest(manifest_ranges):
    assert [r.name for r in manifest_ranges] == ['2023.x', '2024.x', '2025.x']
    first = manifest_ranges[0]
    assert first.minimum == (2023, 1, 0, 0)
    assert first.maximum == (2024, 1, 0, 0)
    assert first.installers_by_type == {
        'TakeControlStandalone': 'https://cdn.example.com/tc/2023/TakeControlSetup.exe',
        'TakeControlViewer': 'https://cdn.example.com/tc/2023/Viewer.exe',
    }


@pytest.mark.parametrize(
    'document, message', [
        pytest.param('<VersionRanges>', "could not be parsed", id="malformed"),
        pytest.param('<VersionRanges/>', "contains no ranges", id="no_ranges"),
        pytest.param(
            '<VersionRanges><Range Name="r" Minimum="x" Maximum="2"/></VersionRanges>',
            "invalid bounds", id="bad_bounds"),
        pytest.param(
            '<VersionRanges><Range Name="r" Minimum="1" Maximum="2"><Installer Type="t"/></Range></VersionRanges>',
            "without a Type or Uri", id="installer_without_uri"),
    ])
def test_parse_manifest_invalid(document, message):
    with pytest.raises(ResolutionError, match=message):
        parse_manifest(document)


@pytest.mark.parametrize(
    'minimum, version, maximum', [
        pytest.param('1.0', '1.1', '2.0', id="simple"),
        pytest.param('2024.1.0.0', '2024.1.0.1', '2024.1.0.2', id="narrow"),
        pytest.param('2024.1.0.0', '2024.6.3.17', '2025.1.0.0', id="typical"),
        pytest.param('9', '10', '11', id="numeric_not_lexical"),
    ])
def test_resolve_single_range(minimum, version, maximum):
    ranges = parse_manifest(_single_range_manifest(minimum, maximum))
    assert resolve_installer_uri(ranges, version, INSTALLER_TYPE) == 'https://cdn.example.com/tc.exe'


@pytest.mark.parametrize(
    'version', [
        pytest.param('1.0', id="equals_minimum"),
        pytest.param('1.0.0.0', id="equals_minimum_long_form"),
        pytest.param('2.0', id="equals_maximum"),
        pytest.param('0.9.9', id="below"),
        pytest.param('2.0.0.1', id="above"),
    ])
def test_resolve_no_compatible_version(version):
    ranges = parse_manifest(_single_range_manifest('1.0', '2.0'))
    with pytest.raises(NoCompatibleVersionError, match="No compatible version range"):
        resolve_installer_uri(ranges, version, INSTALLER_TYPE)


def test_select_range_from_manifest(manifest_ranges):
    assert select_range(manifest_ranges, (2024, 3, 0, 12)).name == '2024.x'


def test_resolve_overlapping_ranges_is_ambiguous():
    ranges = [
        VersionRange('a', (1, 0), (3, 0), {INSTALLER_TYPE: 'https://a'}),
        VersionRange('b', (2, 0), (4, 0), {INSTALLER_TYPE: 'https://b'}),
    ]
    with pytest.raises(AmbiguousVersionRangeError, match="matches 2 version ranges: 'a', 'b'"):
        resolve_installer_uri(ranges, '2.5', INSTALLER_TYPE)
    # Outside the overlap only one range matches
    assert resolve_installer_uri(ranges, '1.5', INSTALLER_TYPE) == 'https://a'
    assert resolve_installer_uri(ranges, '3.5', INSTALLER_TYPE) == 'https://b'


def test_resolve_missing_installer_type(manifest_ranges):
    with pytest.raises(ResolutionError, match="no installer of type 'TakeControlStandalone'"):
        resolve_installer_uri(manifest_ranges, '2025.2', INSTALLER_TYPE)

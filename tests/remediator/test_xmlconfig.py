"""
RMM Agent Remediator: Unit tests for editing the Agent's XML configuration
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import shutil
import xml.etree.ElementTree as ElementTree

import pytest

from remediator.objects import ConfigEditError
from remediator.xmlconfig import SettingChange, apply_settings

PATCH_PREFIX = 'remediator.xmlconfig.'

CHANGES = [
    SettingChange('ApplianceConfig.xml', 'CustomerID', '123'),
    SettingChange('ApplianceConfig.xml', 'RegistrationToken', '5f0c9a1e-3b8d-4c2a-9e71-2d6f4a8b0c13'),
    SettingChange('ServerConfig.xml', 'ServerIP', 'rmm.example.com'),
]


@pytest.fixture
def config_dir(resources_path, tmp_path):
    config_dir = tmp_path / 'config'
    shutil.copytree(resources_path / 'agent_config', config_dir)
    return config_dir


def _text(path, selector):
    return ElementTree.parse(path).getroot().find(selector).text


def _snapshot(config_dir):
    return {path.name: path.read_bytes() for path in sorted(config_dir.iterdir())}


def test_apply_settings(config_dir):
    assert apply_settings(config_dir, CHANGES) == 3

    appliance = config_dir / 'ApplianceConfig.xml'
    assert _text(appliance, 'CustomerID') == '123'
    assert _text(appliance, 'RegistrationToken') == '5f0c9a1e-3b8d-4c2a-9e71-2d6f4a8b0c13'
    assert _text(appliance, 'ApplianceID') == '1234'
    assert _text(config_dir / 'ServerConfig.xml', 'ServerIP') == 'rmm.example.com'
    assert _text(config_dir / 'ServerConfig.xml', 'Port') == '443'

    assert _text(config_dir / 'ApplianceConfig.xml.bak', 'CustomerID') == '100'
    assert _text(config_dir / 'ServerConfig.xml.bak', 'ServerIP') == 'old.example.com'
    assert not list(config_dir.glob('*.tmp'))


def test_apply_settings_without_backup(config_dir):
    apply_settings(config_dir, CHANGES[:1], backup=False)
    assert _text(config_dir / 'ApplianceConfig.xml', 'CustomerID') == '123'
    assert sorted(p.name for p in config_dir.iterdir()) == ['ApplianceConfig.xml', 'ServerConfig.xml']


def test_apply_settings_only_touches_changed_files(config_dir):
    before = (config_dir / 'ServerConfig.xml').read_bytes()
    apply_settings(config_dir, CHANGES[:2])
    assert (config_dir / 'ServerConfig.xml').read_bytes() == before
    assert not (config_dir / 'ServerConfig.xml.bak').exists()


@pytest.mark.parametrize(
    'bad_change, message', [
        pytest.param(
            SettingChange('ServerConfig.xml', 'ServerAddress', 'x'), "'ServerAddress' not found in 'ServerConfig.xml'",
            id="unknown_selector"),
        pytest.param(
            SettingChange('ServerConfig.xml', '/ServerIP', 'x'), "is not a valid selector",
            id="invalid_selector"),
        pytest.param(
            SettingChange('Missing.xml', 'ServerIP', 'x'), "not found",
            id="missing_file"),
    ])
def test_apply_settings_all_or_nothing(bad_change, message, config_dir):
    before = _snapshot(config_dir)
    with pytest.raises(ConfigEditError, match=message):
        apply_settings(config_dir, CHANGES + [bad_change])
    assert _snapshot(config_dir) == before


def test_apply_settings_unparseable_file(config_dir):
    (config_dir / 'ServerConfig.xml').write_text('<ServerConfig><ServerIP>')
    before = _snapshot(config_dir)
    with pytest.raises(ConfigEditError, match="could not be parsed"):
        apply_settings(config_dir, CHANGES)
    assert _snapshot(config_dir) == before


def test_apply_settings_write_failure(config_dir, mocker):
    before = _snapshot(config_dir)
    mocker.patch(PATCH_PREFIX + 'Path.write_bytes', side_effect=PermissionError("read-only"))
    with pytest.raises(ConfigEditError, match="No settings changed"):
        apply_settings(config_dir, CHANGES)
    assert _snapshot(config_dir) == before


def test_apply_settings_replace_failure(config_dir, mocker):
    mocker.patch(PATCH_PREFIX + 'os.replace', side_effect=PermissionError("in use"))
    with pytest.raises(ConfigEditError, match="0 of 2 replaced"):
        apply_settings(config_dir, CHANGES)
    assert _text(config_dir / 'ApplianceConfig.xml', 'CustomerID') == '100'
    assert not list(config_dir.glob('*.tmp'))


def test_apply_settings_no_changes(config_dir):
    with pytest.raises(ConfigEditError, match="No setting changes supplied"):
        apply_settings(config_dir, [])


def test_apply_settings_keeps_comments(tmp_path):
    path = tmp_path / 'ApplianceConfig.xml'
    path.write_text(
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<!-- written by the Agent installer -->\n'
        '<ApplianceConfig>\n'
        '  <!-- do not edit by hand -->\n'
        '  <CustomerID>100</CustomerID>\n'
        '</ApplianceConfig>\n'
    )

    apply_settings(tmp_path, [SettingChange('ApplianceConfig.xml', 'CustomerID', '123')])

    text = path.read_text()
    assert text.startswith('<?xml version="1.0" encoding="utf-8"?>\n<!-- written by the Agent installer -->\n')
    assert '<!-- do not edit by hand -->' in text
    assert '<CustomerID>123</CustomerID>' in text
    assert text.endswith('</ApplianceConfig>\n')


def test_apply_settings_keeps_declared_encoding(tmp_path):
    path = tmp_path / 'ServerConfig.xml'
    path.write_bytes(
        b'<?xml version="1.0" encoding="ISO-8859-1"?>\n'
        b'<ServerConfig><Label>Caf\xe9</Label><ServerIP>old.example.com</ServerIP></ServerConfig>'
    )

    apply_settings(tmp_path, [SettingChange('ServerConfig.xml', 'ServerIP', 'rmm.example.com')])

    raw = path.read_bytes()
    assert raw.count(b'<?xml') == 1
    assert b'<Label>Caf\xe9</Label>' in raw
    assert _text(path, 'ServerIP') == 'rmm.example.com'

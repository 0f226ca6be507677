"""
RMM Agent Remediator: Transactional edits of the Agent's XML configuration files.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import xml.etree.ElementTree as ElementTree
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from .objects import ConfigEditError

if TYPE_CHECKING:
    from typing import Iterable, Union

TEMP_SUFFIX = '.tmp'
BACKUP_SUFFIX = '.bak'

# Everything ahead of the root element: BOM, XML declaration, comments, PIs, DOCTYPE
RE_PROLOG = re.compile(rb'\A(?:\xef\xbb\xbf)?(?:\s+|<\?.*?\?>|<!--.*?-->|<!DOCTYPE[^>]*>)*', re.DOTALL)
RE_TRAILING_WHITESPACE = re.compile(rb'\s*\Z')
RE_DECLARED_ENCODING = re.compile(rb"<\?xml[^>]*\bencoding=['\"]([A-Za-z0-9._-]+)['\"]")
DEFAULT_ENCODING = 'utf-8'

logger = logging.getLogger(__name__)


class SettingChange(NamedTuple):
    """
    A single setting to change.
    'selector' is an ElementTree path relative to the document root, e.g. 'CustomerID'
    or 'Server/Address'.
    """
    file_name: str
    selector: str
    value: str


class _Document(NamedTuple):
    tree: ElementTree.ElementTree
    prolog: bytes
    epilog: bytes


def apply_settings(config_dir: Union[str, Path], changes: Iterable[SettingChange], backup: bool = True) -> int:
    """
    Applies all changes or none of them.

    Every document is parsed and every selector located before anything is modified.
    Documents are then written to temporary files which only replace the originals once
    all of them have been written. Comments, the XML declaration and anything else ahead
    of the root element are kept. Returns the number of settings changed.
    """
    changes = list(changes)
    if not changes:
        raise ConfigEditError("No setting changes supplied")

    config_dir = Path(config_dir)
    documents: dict[str, _Document] = {}
    pending: list[tuple[ElementTree.Element, SettingChange]] = []
    failures: list[str] = []

    for change in changes:
        document = documents.get(change.file_name)
        if document is None:
            document = _load_document(config_dir / change.file_name)
            documents[change.file_name] = document
        try:
            element = document.tree.getroot().find(change.selector)
        except SyntaxError as ex:
            failures.append(f"'{change.selector}' in '{change.file_name}' is not a valid selector ({ex})")
            continue
        if element is None:
            failures.append(f"'{change.selector}' not found in '{change.file_name}'")
        else:
            pending.append((element, change))

    if failures:
        raise ConfigEditError(f"No settings changed: {'; '.join(failures)}")

    for element, change in pending:
        logger.debug("Setting '%s' in '%s'", change.selector, change.file_name)
        element.text = change.value

    _commit_documents(config_dir, documents, backup)
    logger.info("Changed %d setting(s) in %d file(s) under '%s'", len(pending), len(documents), config_dir)
    return len(pending)


def _load_document(path: Path) -> _Document:
    try:
        raw = path.read_bytes()
        parser = ElementTree.XMLParser(target=ElementTree.TreeBuilder(insert_comments=True, insert_pis=True))
        tree = ElementTree.ElementTree(ElementTree.fromstring(raw, parser=parser))
    except FileNotFoundError:
        raise ConfigEditError(f"Configuration file '{path}' not found")
    except ElementTree.ParseError as ex:
        raise ConfigEditError(f"Configuration file '{path}' could not be parsed: {ex}")
    except OSError as ex:
        raise ConfigEditError(f"Configuration file '{path}' could not be read: {ex}")
    return _Document(
        tree=tree,
        prolog=RE_PROLOG.match(raw).group(0),
        epilog=RE_TRAILING_WHITESPACE.search(raw).group(0),
    )


def _serialise(document: _Document) -> bytes:
    """Re-encodes the root element in the encoding the original declared"""
    declared = RE_DECLARED_ENCODING.search(document.prolog)
    encoding = declared.group(1).decode('ascii') if declared else DEFAULT_ENCODING
    try:
        body = ElementTree.tostring(document.tree.getroot(), encoding=encoding, xml_declaration=False)
    except LookupError as ex:
        raise ConfigEditError(f"No settings changed, unsupported encoding: {ex}")
    return document.prolog + body + document.epilog


def _commit_documents(config_dir: Path, documents: dict[str, _Document], backup: bool):
    payloads = {file_name: _serialise(document) for file_name, document in documents.items()}
    written: list[tuple[Path, Path]] = []
    try:
        for file_name, payload in payloads.items():
            path = config_dir / file_name
            temp_path = path.with_name(path.name + TEMP_SUFFIX)
            written.append((temp_path, path))
            temp_path.write_bytes(payload)
    except OSError as ex:
        for temp_path, _ in written:
            temp_path.unlink(missing_ok=True)
        raise ConfigEditError(f"No settings changed, failed to write '{config_dir}': {ex}")

    replaced = 0
    try:
        for temp_path, path in written:
            if backup:
                shutil.copy2(path, path.with_name(path.name + BACKUP_SUFFIX))
            os.replace(temp_path, path)
            replaced += 1
    except OSError as ex:
        for temp_path, _ in written[replaced:]:
            temp_path.unlink(missing_ok=True)
        raise ConfigEditError(
            f"Failed to replace configuration files under '{config_dir}' "
            f"({replaced} of {len(written)} replaced, backups are alongside): {ex}"
        )

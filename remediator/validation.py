"""
RMM Agent Remediator: Validation of invocation parameters.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import dataclasses
import logging
import socket
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from .helpers import mask_secret, parse_version
from .objects import ValidationError

if TYPE_CHECKING:
    from typing import Optional

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class InvocationParameters:
    """Validated parameters for a single run"""
    server: str
    customer_id: int
    registration_token: uuid.UUID
    agent_version: Optional[str] = None
    force_reinstall: bool = False
    local_file: Optional[Path] = None

    def as_log_dict(self) -> dict:
        """Returns the parameters with the registration token masked"""
        return {
            'server': self.server,
            'customer_id': self.customer_id,
            'registration_token': mask_secret(self.registration_token),
            'agent_version': self.agent_version,
            'force_reinstall': self.force_reinstall,
            'local_file': self.local_file,
        }


def validate_customer_id(customer_id: str) -> int:
    try:
        value = int(str(customer_id).strip())
    except ValueError:
        raise ValidationError('customer_id', f"'{customer_id}' is not an integer")
    if value < 0:
        raise ValidationError('customer_id', f"'{customer_id}' must not be negative")
    return value


def validate_registration_token(token: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(token).strip())
    except ValueError:
        # Do not log the token itself
        raise ValidationError('registration_token', "value is not a valid GUID")


def validate_server(server: str) -> str:
    server = (server or '').strip()
    if not server:
        raise ValidationError('server', "no server address supplied")
    try:
        socket.getaddrinfo(server, None)
    except (socket.gaierror, UnicodeError) as ex:
        raise ValidationError('server', f"'{server}' does not resolve ({ex})")
    return server


def validate_agent_version(agent_version: Optional[str]) -> Optional[str]:
    if not agent_version:
        return None
    try:
        parse_version(agent_version)
    except ValueError:
        raise ValidationError('agent_version', f"'{agent_version}' is not a version number")
    return agent_version.strip()


def validate_local_file(local_file: Optional[str]) -> Optional[Path]:
    if not local_file:
        return None
    path = Path(local_file)
    if not path.is_file():
        raise ValidationError('local_file', f"'{local_file}' is not a file")
    return path


def validate_parameters(
        server: str,
        customer_id: str,
        registration_token: str,
        agent_version: Optional[str] = None,
        force_reinstall: bool = False,
        local_file: Optional[str] = None,
) -> InvocationParameters:
    """
    Validates all invocation parameters, raising a ValidationError naming the first invalid one.
    Cheap checks are made before the DNS lookup of the server.
    """
    customer_id_value = validate_customer_id(customer_id)
    token_value = validate_registration_token(registration_token)
    version_value = validate_agent_version(agent_version)
    local_file_value = validate_local_file(local_file)
    server_value = validate_server(server)
    logger.debug("Invocation parameters validated")
    return InvocationParameters(
        server=server_value,
        customer_id=customer_id_value,
        registration_token=token_value,
        agent_version=version_value,
        force_reinstall=bool(force_reinstall),
        local_file=local_file_value,
    )

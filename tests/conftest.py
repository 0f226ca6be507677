"""
RMM Agent Remediator: Fixtures for all unit tests
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import logging
import uuid
from pathlib import Path

import pytest
import yaml

from remediator.config import RemediatorConfig
from remediator.objects import Platform
from remediator.validation import InvocationParameters

BASE_PATH = Path(__file__).parent
RESOURCES_PATH = (BASE_PATH / 'resources').resolve()
TEST_CONFIG__PATH = RESOURCES_PATH / 'config.yml'

TOKEN = uuid.UUID('5f0c9a1e-3b8d-4c2a-9e71-2d6f4a8b0c13')


@pytest.fixture(autouse=True)
def logging_debug(caplog):
    caplog.set_level(logging.DEBUG)


@pytest.fixture()
def remediator_config() -> RemediatorConfig:
    with open(TEST_CONFIG__PATH, 'r') as f:
        config_dict = yaml.safe_load(f)
    return RemediatorConfig.from_dict(config_dict)


@pytest.fixture()
def params() -> InvocationParameters:
    return InvocationParameters(
        server='rmm.example.com',
        customer_id=123,
        registration_token=TOKEN,
    )


@pytest.fixture
def platform_win() -> Platform:
    yield Platform('Windows', 'AMD64', ('10', '10.0.19045', 'SP0', 'Multiprocessor Free'))


@pytest.fixture
def platform_linux() -> Platform:
    yield Platform('Linux', 'x86_64', tuple())


@pytest.fixture
def resources_path() -> Path:
    return RESOURCES_PATH

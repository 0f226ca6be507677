"""
RMM Agent Remediator: Read remediator configuration
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import dataclasses
import glob
import os
import re
import sys
from importlib import metadata
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from remediator.helpers import merge_dictionary
from remediator.xmlconfig import SettingChange

if TYPE_CHECKING:
    from typing import Callable, Optional

    from remediator.validation import InvocationParameters

AGENT_NAME = "RMM Agent Remediator"
DISTRIBUTION_NAME = 'rmm-agent-remediator'

RELATIVE_BASE_PATH_SRC = '../'
RELATIVE_BASE_PATH_FROZEN = '../../../'

DEFAULT_CONFIG_NAME = 'remediator.default.yml'
CONFIG_DIR_NAME = 'cfg'
VAR_DIR_NAME = 'var'
USER_CONFIG_REL_PATH = CONFIG_DIR_NAME + '/custom/remediator.yml'
STARTUP_LOG_REL_PATH = VAR_DIR_NAME + '/startup.log'
USER_CONFIG_SUBDIR = 'custom'
YAML_EXTENSIONS = {'yml', 'yaml'}
TRUE_STRINGS = ('true', 'y', 'yes', '1')
MERGE_LISTS = ('success_exit_codes',)
VERSION_FILE_NAME = 'VERSION'
DEFAULT_VERSION = '0.0.0'

# Installed (non-frozen, non-source) copies ship the default config inside the package
# and keep their writable files under a per-machine or per-user data directory
PACKAGE_CONFIG_DIR = Path(__file__).parent / CONFIG_DIR_NAME
DATA_DIR_NAME_WINDOWS = AGENT_NAME
DATA_DIR_NAME_POSIX = '.rmm-remediator'
VALID_PROTOCOLS = ('HTTP', 'HTTPS')

# Placeholders that may appear in URL and re-registration setting templates
TEMPLATE_FIELDS = ('server', 'customer_id', 'registration_token', 'version')

DEFAULT_USER_CONFIG_CONTENT = """---
# This file has been created as a placeholder for your custom
#  configuration overrides. YAML configuration files in the "custom"
#  directory will be read in alphanumeric order.
# Never place customer IDs or registration tokens here, they are
#  supplied on the command line.
"""

startup_log: Callable = None


def read_bool_from_envar(var: str) -> bool:
    """Interpret an environment variable as a Boolean"""
    return os.environ.get(var, '').lower() in TRUE_STRINGS


class ConfigurationError(Exception):
    """An error has been encountered in the configuration"""
    pass


class AbstractConfig:
    """
    Base abstract Config class.
    Provides a simple from_dict method to be used to spin up instances of its subclasses.
    """
    # noinspection PyArgumentList
    # This should NEVER be called on the Abstract class but allows
    # us to define simple *Config classes below.
    NAME: str = ''

    @classmethod
    def from_dict(cls, config: dict):
        """Build the object from a dict"""
        try:
            return cls(**config)
        except TypeError as ex:
            # catch common errors and make them meaningful

            # __init__() missing 1 required positional argument: 'manifest_url'
            match = re.match(r'.*__init__\(\) missing .*: (.*)$', str(ex))
            if match:
                raise ConfigurationError(f"Configuration missing from '{cls.NAME}': {match.group(1)}")

            # __init__() got an unexpected keyword argument 'foo'
            match = re.match(r".*__init__\(\) got an unexpected .* '(.*)'$", str(ex))
            if match:
                raise ConfigurationError(f"Unexpected configuration in '{cls.NAME}': '{match.group(1)}'")

            # some other error
            raise


def _format_template(template: str, section: str, **values) -> str:
    """Formats a configured template, reporting unknown placeholders as configuration errors"""
    try:
        return template.format(**values)
    except (KeyError, IndexError) as ex:
        raise ConfigurationError(
            f"Unknown placeholder {ex} in '{section}' template '{template}' "
            f"(choices = {', '.join(TEMPLATE_FIELDS)})"
        )


@dataclasses.dataclass
class HttpConfig(AbstractConfig):
    """
    Class to store configuration for manifest and installer transfers.
    """
    connection_timeout: float
    network_timeout: float
    user_agent: str
    max_redirects: int = 5
    check_server_cert: bool = True

    NAME: str = 'http'


@dataclasses.dataclass
class InstallerConfig(AbstractConfig):
    """
    Class to store configuration for running installers.
    """
    strict_exit_codes: bool
    success_exit_codes: list[int]
    temp_dir: Optional[str] = None

    NAME: str = 'installer'

    def __post_init__(self):
        if not self.success_exit_codes:
            raise ConfigurationError(f"'{self.NAME}' section 'success_exit_codes' is empty")
        self.success_exit_codes = [int(code) for code in self.success_exit_codes]


@dataclasses.dataclass
class ServicesConfig(AbstractConfig):
    """
    Class to store configuration for starting and stopping services.
    """
    start_timeout: float
    poll_interval: float

    NAME: str = 'services'


@dataclasses.dataclass
class AgentComponentConfig(AbstractConfig):
    """
    Class to store configuration for the RMM Agent component.
    """
    binary_path: str
    service_names: list[str]
    installer_name: str
    installer_url: str
    versioned_installer_url: str
    network_share_path: Optional[str] = None
    protocol: str = 'HTTPS'
    port: int = 443

    NAME: str = 'agent'

    def __post_init__(self):
        if not self.service_names:
            raise ConfigurationError(f"'{self.NAME}' section 'service_names' is empty")
        self.protocol = str(self.protocol).upper()
        if self.protocol not in VALID_PROTOCOLS:
            raise ConfigurationError(
                f"'{self.protocol}' is an invalid '{self.NAME}' protocol (choices = {', '.join(VALID_PROTOCOLS)})"
            )

    def installer_download_url(self, params: InvocationParameters) -> str:
        """Returns the installer URL, preferring the versioned URL when a version was requested"""
        template = self.versioned_installer_url if params.agent_version else self.installer_url
        return _format_template(
            template, self.NAME,
            server=params.server,
            customer_id=params.customer_id,
            registration_token=params.registration_token,
            version=params.agent_version or '',
        )


@dataclasses.dataclass
class TakeControlConfig(AbstractConfig):
    """
    Class to store configuration for the Take Control remote-support component.
    """
    binary_path: str
    service_names: list[str]
    manifest_url: str
    installer_type: str
    installer_name: str
    installer_arguments: list[str] = dataclasses.field(default_factory=lambda: ['/S'])

    NAME: str = 'take_control'

    def __post_init__(self):
        if not self.service_names:
            raise ConfigurationError(f"'{self.NAME}' section 'service_names' is empty")
        self.installer_arguments = [str(arg) for arg in self.installer_arguments or []]


@dataclasses.dataclass
class ReRegistrationConfig(AbstractConfig):
    """
    Class to store configuration for the legacy re-registration of an installed Agent.
    'settings' maps an XML file name (relative to config_dir) to a mapping of
    element selectors and value templates.
    """
    config_dir: str
    settings: dict[str, dict[str, str]]

    NAME: str = 'reregistration'

    def __post_init__(self):
        if not self.settings:
            raise ConfigurationError(f"'{self.NAME}' section 'settings' is empty")
        for file_name, changes in self.settings.items():
            if not isinstance(changes, dict) or not changes:
                raise ConfigurationError(f"'{self.NAME}' settings for '{file_name}' must be a non-empty mapping")

    def setting_changes(self, params: InvocationParameters) -> list[SettingChange]:
        """Builds the typed list of setting changes for the supplied parameters"""
        values = {
            'server': params.server,
            'customer_id': params.customer_id,
            'registration_token': params.registration_token,
            'version': params.agent_version or '',
        }
        return [
            SettingChange(file_name, selector, _format_template(str(template), self.NAME, **values))
            for file_name, changes in self.settings.items()
            for selector, template in changes.items()
        ]


@dataclasses.dataclass
class RemediatorConfig(AbstractConfig):
    """
    Class to store configuration for the entire remediator.

    dataclasses.field(repr=False) is used to keep the repr() output of a RemediatorConfig readable.
    """
    agent_name: str
    version: str
    logging: dict = dataclasses.field(repr=False)
    http: HttpConfig = dataclasses.field(repr=False)
    installer: InstallerConfig = dataclasses.field(repr=False)
    services: ServicesConfig = dataclasses.field(repr=False)
    agent: AgentComponentConfig = dataclasses.field(repr=False)
    take_control: TakeControlConfig = dataclasses.field(repr=False)
    reregistration: ReRegistrationConfig = dataclasses.field(repr=False)

    @classmethod
    def from_dict(cls, config: dict):
        """Build the remediator configuration from a dict"""
        try:
            return cls(
                agent_name=AGENT_NAME,
                version=config['version'],
                logging=config['logging'] or {},
                http=HttpConfig.from_dict(config['http']),
                installer=InstallerConfig.from_dict(config['installer']),
                services=ServicesConfig.from_dict(config['services']),
                agent=AgentComponentConfig.from_dict(config['agent']),
                take_control=TakeControlConfig.from_dict(config['take_control']),
                reregistration=ReRegistrationConfig.from_dict(config['reregistration']),
            )
        except KeyError as ex:
            raise ConfigurationError(f'Missing configuration section: {ex}')


def get_agent_root() -> Path:  # pragma: no cover
    """
    Returns the root dir of the remediator installation.
    This is dependent on whether the remediator has been frozen.
    """
    relative_path = RELATIVE_BASE_PATH_FROZEN if getattr(sys, 'frozen', False) else RELATIVE_BASE_PATH_SRC
    base_path = Path(__file__).parent
    return base_path / relative_path


def _is_self_contained(agent_root: Path) -> bool:
    """Frozen builds and source checkouts carry their cfg directory alongside the code"""
    return getattr(sys, 'frozen', False) or (agent_root / CONFIG_DIR_NAME / DEFAULT_CONFIG_NAME).is_file()


def get_default_config_dir() -> Path:
    """Returns the directory holding remediator.default.yml"""
    agent_root = get_agent_root()
    if _is_self_contained(agent_root):
        return (agent_root / CONFIG_DIR_NAME).resolve()
    return PACKAGE_CONFIG_DIR


def get_data_root() -> Path:
    """
    Returns the root dir for the files the remediator writes (custom config, startup log).
    This is the installation root, except for a package installed into site-packages.
    """
    agent_root = get_agent_root()
    if _is_self_contained(agent_root):
        return agent_root.resolve()
    if sys.platform.startswith('win32'):
        return Path(os.environ.get('PROGRAMDATA', 'C:/ProgramData')) / DATA_DIR_NAME_WINDOWS
    return Path.home() / DATA_DIR_NAME_POSIX


def get_startup_log_path() -> Path:
    """Returns the path of startup.log file"""
    return (get_data_root() / STARTUP_LOG_REL_PATH).resolve()


def create_default_user_config_if_required() -> bool:
    """Writes a new user config file if one does not already exist."""
    user_config_path = (get_data_root() / USER_CONFIG_REL_PATH).resolve()
    if os.path.isfile(user_config_path):
        return False
    os.makedirs(os.path.dirname(user_config_path), exist_ok=True)
    with open(user_config_path, 'w') as f:
        f.write(DEFAULT_USER_CONFIG_CONTENT)
    return True


def get_config(logger: Callable, config_dir: Optional[Path] = None) -> RemediatorConfig:
    """Reads the configuration file(s) and returns a RemediatorConfig from the contents within."""
    def open_yaml(path: str):
        startup_log(f"Reading config file '{path}'")
        with open(path, 'r') as f:
            return yaml.safe_load(f)

    # Set the file's startup_log function
    global startup_log
    startup_log = logger

    # When cx_Freeze is used (frozen) the base directory is a couple of levels higher
    agent_root = get_agent_root()
    if config_dir:
        config_dir = Path(config_dir).resolve()
        default_config_path = config_dir / DEFAULT_CONFIG_NAME
        custom_config_path = (config_dir / USER_CONFIG_SUBDIR).resolve()
    else:
        default_config_path = get_default_config_dir() / DEFAULT_CONFIG_NAME
        custom_config_path = (get_data_root() / CONFIG_DIR_NAME / USER_CONFIG_SUBDIR).resolve()

    if not default_config_path.is_file():
        raise ConfigurationError(f"Default configuration file '{default_config_path}' not found")

    # Ensure config files are added in the correct order:
    #  1) remediator.default.yml
    #  2) config files in the custom directory (sorted alphanumerically)
    config_files = [default_config_path]
    custom_config_files: list[str] = []
    for extension in YAML_EXTENSIONS:
        custom_config_files += glob.glob(f'{custom_config_path}/*.{extension}')
    config_files += sorted(custom_config_files)

    # Process ordered config files
    config: dict = {}
    for cfg in [d for d in [open_yaml(cfg_path) for cfg_path in config_files] if d is not None]:
        merge_dictionary(config, cfg, MERGE_LISTS)

    config['version'] = _read_version_info(agent_root.resolve())

    if read_bool_from_envar('REMEDIATOR_DUMP_FINAL_CONFIG'):
        startup_log(f"Config dict = {config}", prefix='[DEBUG]')

    return RemediatorConfig.from_dict(config)


def _read_version_info(root_dir: Path) -> str:
    """Reads the version number from the version file, or the installed distribution's metadata."""
    file_path = (root_dir / VERSION_FILE_NAME).resolve()
    try:
        with open(file_path, 'r') as f_in:
            raw_version = f_in.read().strip()
    except FileNotFoundError:
        try:
            raw_version = metadata.version(DISTRIBUTION_NAME)
        except metadata.PackageNotFoundError:
            raw_version = DEFAULT_VERSION
            startup_log(
                f"Failed to read version file '{file_path}'. Setting to '{raw_version}'", prefix='[WARNING]'
            )
    return raw_version.partition('-')[0]

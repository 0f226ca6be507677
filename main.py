"""
RMM Agent Remediator: Main launcher
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import TYPE_CHECKING

from remediator.config import (
    create_default_user_config_if_required,
    get_config,
    get_startup_log_path,
)
from remediator.logger import init_logging, log_dict
from remediator.objects import PrivilegeError, ValidationError
from remediator.privilege import require_admin
from remediator.procedure import COMPONENT_ALL, COMPONENT_CHOICES, build_procedures, run_procedures
from remediator.resolver import ArtifactResolver
from remediator.runner import InstallerRunner
from remediator.self_check import format_platform_info, get_platform
from remediator.services import ServiceStarter
from remediator.validation import validate_parameters
from returncodes import (
    RETURN_CODE_OK,
    RETURN_CODE_CONFIG_ERROR,
    RETURN_CODE_ERROR,
    RETURN_CODE_PRIVILEGE_ERROR,
    RETURN_CODE_USAGE_ERROR,
)

if TYPE_CHECKING:
    from typing import Optional, Sequence

    from remediator.config import RemediatorConfig
    from remediator.validation import InvocationParameters


logger: logging.Logger = None

STARTUP_LOG_FILE = get_startup_log_path()


class UsageArgumentParser(argparse.ArgumentParser):
    """ArgumentParser exiting with the remediator's usage error code"""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(RETURN_CODE_USAGE_ERROR, f"{self.prog}: error: {message}\n")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = UsageArgumentParser(
        prog='rmm-remediator',
        description="Install, repair or re-register the RMM Agent and its Take Control component",
    )
    parser.add_argument('--server', required=True, help="RMM server address (must resolve via DNS)")
    parser.add_argument('--customer-id', required=True, help="Customer ID (integer)")
    parser.add_argument('--registration-token', required=True, help="Registration token (GUID)")
    parser.add_argument('--agent-version', help="Agent version to download (defaults to the server's current)")
    parser.add_argument('--force-reinstall', action='store_true', help="Reinstall even when healthy")
    parser.add_argument('--local-file', help="Pre-downloaded Agent installer to use instead of downloading")
    parser.add_argument('--component', choices=COMPONENT_CHOICES, default=COMPONENT_ALL)
    parser.add_argument(
        '--reregister', action='store_true',
        help="Re-register the installed Agent by editing its configuration instead of installing",
    )
    parser.add_argument('--config-dir', type=Path, help="Directory holding remediator.default.yml")
    return parser.parse_args(argv)


def startup_log(message: str, prefix: str = "[INFO]"):
    """Writes a message to STARTUP_LOG_FILE and stderr"""
    message = f"{prefix} {message}"
    with STARTUP_LOG_FILE.open('a') as f:
        for handler in [sys.stderr, f]:
            print(message, file=handler)


def config_error(message: str):
    """Writes an error to STARTUP_LOG_FILE and stderr and then exits"""
    startup_log(message, "[ERROR]")
    sys.exit(RETURN_CODE_CONFIG_ERROR)


def remediate(config: RemediatorConfig, params: InvocationParameters, component: str, reregister: bool) -> int:
    """Runs the requested component procedures in sequence, returning the process exit code"""
    platform_data = get_platform()
    logger.info(format_platform_info(config.agent_name, config.version, platform_data.is_windows))
    procedures = build_procedures(
        config,
        resolver=ArtifactResolver(config),
        runner=InstallerRunner(platform_data, config.installer.success_exit_codes),
        starter=ServiceStarter(config.services),
        component=component,
        reregister=reregister,
    )
    results = run_procedures(procedures, params)
    for result in results:
        logger.info("Result: %s", result)
    return RETURN_CODE_OK if all(result.success for result in results) else RETURN_CODE_ERROR


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the RMM Agent Remediator"""
    global logger

    args = parse_args(argv)

    STARTUP_LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.remove(STARTUP_LOG_FILE)
    except FileNotFoundError:
        pass

    startup_log("Starting RMM Agent Remediator")
    startup_log(f"Running with Python version '{sys.version.split()[0]}', encoding '{sys.getfilesystemencoding()}'")

    # Nothing is written beyond the startup log until the parameters are known to be good
    try:
        params = validate_parameters(
            server=args.server,
            customer_id=args.customer_id,
            registration_token=args.registration_token,
            agent_version=args.agent_version,
            force_reinstall=args.force_reinstall,
            local_file=args.local_file,
        )
    except ValidationError as ex:
        startup_log(str(ex), "[ERROR]")
        sys.exit(RETURN_CODE_USAGE_ERROR)

    if not args.config_dir:
        try:
            if create_default_user_config_if_required():
                startup_log("Created default user config file")
        except Exception as ex:
            config_error(f"Error creating default user config file: {ex}")

    # read the configuration
    try:
        startup_log("Reading configuration file(s)")
        config = get_config(logger=startup_log, config_dir=args.config_dir)
    except Exception as ex:
        config_error(f"Configuration error: {ex}")

    # initialise logging
    try:
        startup_log("Initialising logger from config")
        init_logging(config.logging)
        logger = logging.getLogger('main')
        startup_log("Logger successfully initiated")
    except Exception as ex:
        config_error(f"Logging configuration error: {ex}")

    try:
        require_admin()
    except PrivilegeError as ex:
        logger.error("%s", ex)
        sys.exit(RETURN_CODE_PRIVILEGE_ERROR)

    log_dict(logging.INFO, params.as_log_dict(), "Invocation parameters")

    exitcode = RETURN_CODE_OK
    try:
        exitcode = remediate(config, params, args.component, args.reregister)
    except KeyboardInterrupt:
        exitcode = RETURN_CODE_ERROR
    except Exception:
        logger.error(traceback.format_exc())
        exitcode = RETURN_CODE_ERROR
    finally:
        logger.info("Finished with exit code %d", exitcode)
        sys.exit(exitcode)


if __name__ == '__main__':
    main()

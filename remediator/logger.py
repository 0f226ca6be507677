"""
RMM Agent Remediator: Sets up logger for other modules to use.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import copy
import logging
import logging.config

from remediator.config import ConfigurationError
from remediator.helpers import merge_dictionary

logger: logging.Logger = None

# Base logging config dictionary in the following format
# https://docs.python.org/3/library/logging.config.html#logging-config-dictschema
# This is built upon in init_logging() to build a full default logging configuration
# based on the handlers requested in the users configuration file.
BASE_LOGGING_CONFIG_DICT = {
    'version': 1,
    'disable_existing_loggers': True,
    'loggers': {},
    'handlers': {
        'console': {
            'formatter': 'time_formatter',
            'class': 'logging.StreamHandler',
            'stream': 'ext://sys.stdout'
        },
    },
    'formatters': {
        'time_formatter': {
            'class': 'logging.Formatter',
            'format': '%(asctime)s %(name)s : [%(levelname)s] %(message)s'
        },
        'default_formatter': {
            'class': 'logging.Formatter',
            'format': '%(name)s : [%(levelname)s] %(message)s'
        }
    }
}

# Names of the loggers to be created. These map to files/packages at the project root
PROJECT_LOGGERS = ('main', 'remediator')

# Default configuration for loggers under BASE_LOGGING_CONFIG_DICT.loggers
BASE_LOGGER_CONFIG = {
    'level': 'INFO',
    'handlers': ['console'],
    'propagate': False,
}

# Default configuration for the optional handlers.
HANDLERS = {
    'file': {
        'class': 'logging.handlers.RotatingFileHandler',
        'maxBytes': 1024 ** 2,  # 1MB
        'backupCount': 4,
        'mode': 'a',
        'filename': '',
        'formatter': 'time_formatter',
        'delay': False,
    },
    # Requires pywin32, Windows only
    'eventlog': {
        'class': 'logging.handlers.NTEventLogHandler',
        'appname': 'RMM Agent Remediator',
        'formatter': 'default_formatter',
        'level': 'WARNING',
    },
}


def init_logging(config: dict):
    """
    Initialises logging by:
    * Building a default logging config dictionary by combining BASE_LOGGING_CONFIG_DICT
      with the loggers needed (from PROJECT_LOGGERS) and the handlers requested (from
      config['handlers'])
    * Merging the users config dictionary with this default logging dictionary
    * Passing the dictionary to logging.config.dictConfig to configure the logging module
    * Creating and setting the logger for this file (logger.py)
    """
    new_config = copy.deepcopy(BASE_LOGGING_CONFIG_DICT)
    logger_config = copy.deepcopy(BASE_LOGGER_CONFIG)
    if 'handlers' in config and config['handlers'] is None:
        raise ConfigurationError("'logging' section 'handlers' is empty")
    requested_handlers = config.get('handlers', {})

    for handler_name in requested_handlers:
        try:
            # Populate our default config with default handler definitions based on name.
            # The console handler is always used, the others only when requested.
            new_config['handlers'][handler_name] = copy.deepcopy(HANDLERS[handler_name])
            logger_config['handlers'].append(handler_name)
        except KeyError:
            raise ConfigurationError(
                f"'{handler_name}' is an invalid logging handler (choices = {', '.join(HANDLERS.keys())})"
            )

    for logger_name in PROJECT_LOGGERS:
        new_config['loggers'][logger_name] = copy.deepcopy(logger_config)

    merge_dictionary(new_config, config)

    for section in ('loggers', 'handlers', 'formatters'):
        if new_config[section] is None:
            raise ConfigurationError(f"'logging' section '{section}' is empty")

    logging.config.dictConfig(new_config)

    global logger
    logger = logging.getLogger(__name__)

    logger.info("Logging initiated.")
    logger.debug("Logger handlers: %s", logger.handlers)


def log_dict(level: int, dict_object: dict, dict_name: str):
    """Logs the content of a dictionary to the requested level"""
    logger.log(level, dict_name)

    dict_len = len(dict_object)
    for i, (k, v) in enumerate(dict_object.items()):
        prefix = '├─ ' if i + 1 != dict_len else '└─ '
        logger.log(level, "%s%s: %s", prefix, k, v)

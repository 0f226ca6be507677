"""
RMM Agent Remediator: Setup configuration
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

import os
import sys

# Frozen executables are only built when explicitly requested
FREEZE = 'REMEDIATOR_FREEZE' in os.environ
SCRIPT_DIR = os.path.dirname(__file__)

if FREEZE:
    from cx_Freeze import Executable, setup
else:
    from setuptools import find_packages, setup

try:
    with open(os.path.join(SCRIPT_DIR, 'VERSION'), 'r') as f_in:
        VERSION = f_in.read().strip()
except FileNotFoundError:
    VERSION = '0.0.0'  # Probably from `make test` or similar

EXECUTABLE_CONFIG = {
    "copyright": "Copyright 2026 ITRS Group Ltd.",
}

INSTALL_REQUIRES = [
    'gevent',
    'geventhttpclient',
    'psutil',
    'PyYAML',
    'pywin32; sys_platform == "win32"',
]

TESTS_REQUIRE = [
    'coverage',
    'flake8',
    'mock',
    'pytest',
    'pytest-cov',
    'pytest-mock',
]

build_exe_options = {
    'excludes': ['asyncio', 'unittest', 'tkinter', 'test', 'mock'],
    'include_files': [('cfg/remediator.default.yml', 'cfg/remediator.default.yml'), 'VERSION'],
}

if FREEZE and sys.platform.startswith('win32'):
    freeze_kwargs = {
        'options': {'build_exe': build_exe_options | {"include_msvcr": True}},
        'executables': [
            Executable(script="main.py", target_name="rmm-remediator.exe", base="Console", **EXECUTABLE_CONFIG),
        ],
    }
elif FREEZE:
    freeze_kwargs = {
        'options': {'build_exe': build_exe_options},
        'executables': [
            Executable(script='main.py', target_name="rmm-remediator", base='Console', **EXECUTABLE_CONFIG),
        ],
    }
else:
    freeze_kwargs = {
        'packages': find_packages(include=['remediator', 'remediator.*']) + ['remediator.cfg'],
        # Installed copies read remediator.default.yml from inside the package
        'package_dir': {'remediator.cfg': 'cfg'},
        'package_data': {'remediator.cfg': ['remediator.default.yml']},
        'py_modules': ['main', 'returncodes'],
        'entry_points': {'console_scripts': ['rmm-remediator=main:main']},
        'extras_require': {'test': TESTS_REQUIRE},
    }

setup(
    name='rmm-agent-remediator',
    version=VERSION,
    description="Installs, repairs and re-registers the RMM Agent and its Take Control component",
    author="ITRS Group Ltd",
    author_email="support@itrsgroup.com",
    url="https://itrsgroup.com/",
    python_requires='>=3.9',
    install_requires=INSTALL_REQUIRES,
    **freeze_kwargs,
)

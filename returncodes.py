"""
RMM Agent Remediator: Process exit codes
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

RETURN_CODE_OK = 0
RETURN_CODE_ERROR = 1  # One or more components failed
RETURN_CODE_CONFIG_ERROR = 2
RETURN_CODE_USAGE_ERROR = 3  # Invalid invocation parameters
RETURN_CODE_PRIVILEGE_ERROR = 4

"""
Version information for the CRM bridge.
"""

import os

# Base version - update this for releases
BASE_VERSION = "0.1.0"


def get_version() -> str:
    """Base version, with the build commit appended when CRMBRIDGE_BUILD_SHA is set."""
    sha = os.getenv("CRMBRIDGE_BUILD_SHA")
    if sha:
        return f"{BASE_VERSION}+{sha[:7]}"
    return BASE_VERSION


__version__ = get_version()

"""
crm-bridge: incremental two-way sync between Attio and Salesforce.
"""

from .version import __version__

__all__ = ["__version__"]

"""
PPT Platform - feature access for the property-management backend.

Resolves which features each user of a tenant organization can see and use:
global flags, user/organization/role overrides, purchasable feature
packages, per-user-type access rules and opt-in preferences.
"""

__version__ = "1.0.0"
__author__ = "PPT Team"


def get_version() -> str:
    """Get platform version."""
    return __version__


__all__ = ["__version__", "get_version"]

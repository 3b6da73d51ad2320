"""
Tenant-scoped persistence for workflow runtime data.

Every read, aggregate, update and delete issued through the repository is
restricted to the project ids the caller is authorized for.
"""

__version__ = "0.1.0"

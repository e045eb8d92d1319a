"""Workshop access control: multi-tenant RBAC/ABAC authorization core."""

__version__ = "0.3.0"

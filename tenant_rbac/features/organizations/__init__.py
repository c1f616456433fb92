"""
Organizations and their members.

Organization CRUD lives in an external service; this feature keeps the
organization and member rows the RBAC tables point at and exposes the
membership provider used by permission resolution.
"""

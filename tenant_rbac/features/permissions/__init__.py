"""
Permission resolution feature module.

Computes the effective permissions of a member inside an application with
platform-admin and organization-role short-circuits, explicit role grants,
and a bounded TTL cache in front of the explicit-grant path.
"""

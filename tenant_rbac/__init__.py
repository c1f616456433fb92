"""
Multi-tenant role-based access control service.

Organizations own applications, applications expose resources and actions,
roles bundle action grants, and members hold roles. The permissions feature
resolves the effective permission set of a member inside an application.
"""

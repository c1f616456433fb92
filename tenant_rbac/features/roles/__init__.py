"""
Role management: application roles with action grants, custom organization
roles, built-in organization roles, and member role assignments.
"""

"""
Application catalogue: applications, their resources, and resource actions.
"""

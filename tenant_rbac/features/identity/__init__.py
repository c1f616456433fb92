"""
Caller identity supplied by the authentication service.
"""

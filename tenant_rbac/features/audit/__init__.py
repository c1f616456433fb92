"""
Change notification hooks.

Persistence of audit records belongs to an external service; this feature
only defines the sink interface and the fire-and-forget notifier.
"""

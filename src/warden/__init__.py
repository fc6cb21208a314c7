"""Warden: authentication, session, and RBAC backend.

Authenticates users and administrators, binds every token to a single
live session, locks accounts after repeated failures, and resolves
fine-grained permissions through roles with a protected superadmin.
"""

__version__ = "0.1.0"

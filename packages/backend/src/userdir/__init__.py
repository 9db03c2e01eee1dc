"""userdir — user directory with role-based access control.

Authenticates credentials, issues bearer tokens carrying role claims,
and authorizes reads and writes on user records by role membership
or record ownership.
"""

__version__ = "0.1.0"

"""
CampusGate - Session and Access-Control Core

Server-side sessions, request gate and audit trail for the college portal.
"""

__version__ = "0.1.0"

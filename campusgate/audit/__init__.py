"""
CampusGate - Audit Trail

Append-only audit and security event records. Writes never fail the caller.
"""

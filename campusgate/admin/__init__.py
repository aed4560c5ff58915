"""CampusGate - Admin endpoints (audit views, session cleanup)."""

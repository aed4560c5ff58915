"""
CampusGate - Request Gate

Authentication, route authorization, rate limiting and response hardening
applied in front of every route.
"""

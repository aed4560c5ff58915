"""
CampusGate - Authentication Package

- Single live session per user, with fixed expiry and inactivity timeout
- Session fingerprint (IP + user agent) pinned at login
- bcrypt password hashing with progressive account lockout
- Signed identity tokens bound to the server-side session
"""

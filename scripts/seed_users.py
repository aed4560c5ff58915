"""
CampusGate - Database Seed Script

Creates the initial SBTE admin account for development, and optionally
one demo account per portal role.

Usage:
    python -m scripts.seed_users
"""

from sqlmodel import Session, select

from campusgate.auth.database import get_engine, init_db
from campusgate.auth.models import Role, User
from campusgate.auth.password import hash_password
from campusgate.config import settings


ADMIN_EMAIL = "admin@sbte.local"
ADMIN_PASSWORD = "Admin@Portal2024"

DEMO_USERS = [
    ("education@sbte.local", "Education@2024", Role.EDUCATION_DEPARTMENT),
    ("principal@college.local", "Principal@2024", Role.COLLEGE_SUPER_ADMIN),
    ("office@college.local", "Office@2024", Role.COLLEGE_ADMIN),
    ("hod@college.local", "Hod@2024", Role.HOD),
    ("teacher@college.local", "Teacher@2024", Role.TEACHER),
    ("finance@college.local", "Finance@2024", Role.FINANCE_MANAGER),
    ("student@college.local", "Student@2024", Role.STUDENT),
    ("alumnus@college.local", "Alumnus@2024", Role.ALUMNUS),
]


def _create_user(session: Session, email: str, password: str, role: Role) -> bool:
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        print(f"User {email} already exists.")
        return False

    session.add(User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    ))
    print(f"Created user: {email} ({role.value})")
    return True


def seed_admin_user(engine):
    """Create default SBTE admin for development."""
    with Session(engine) as session:
        if _create_user(session, ADMIN_EMAIL, ADMIN_PASSWORD, Role.SBTE_ADMIN):
            session.commit()
            print(f"  Password: {ADMIN_PASSWORD}")


def seed_demo_users(engine):
    """Create demo users for every other role."""
    with Session(engine) as session:
        for email, password, role in DEMO_USERS:
            _create_user(session, email, password, role)
        session.commit()


if __name__ == "__main__":
    print("=" * 50)
    print("CampusGate - User Seed Script")
    print("=" * 50)

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    seed_admin_user(engine)

    print()
    response = input("Create demo users for all roles? (y/n): ")
    if response.lower() == "y":
        seed_demo_users(engine)

    print()
    print("Done!")

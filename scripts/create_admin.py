"""
scripts/create_admin.py

Run this once from your project root to create the first admin user:

    python -m scripts.create_admin

You will be prompted for name, email, phone, and password.
"""

import sys

from app.core.config import settings
from app.core.database import Database
from app.models.user import User, UserRole
from app.schemas.user import validate_nigerian_phone
from app.utils.auth import generate_referral_code, get_password_hash


def create_admin():
    print("\n── Create Admin User ─────────────────────")

    full_name    = input("Full name:       ").strip()
    email        = input("Email:           ").strip().lower()
    phone_number = input("Phone (+234...): ").strip()
    password     = input("Password:        ").strip()

    if not all([full_name, email, phone_number, password]):
        print("All fields are required.")
        sys.exit(1)

    if len(password) < 8:
        print("Password must be at least 8 characters.")
        sys.exit(1)

    try:
        phone_number = validate_nigerian_phone(phone_number)
    except ValueError as e:
        print(str(e))
        sys.exit(1)

    database = Database(settings.database_url)
    database.init()
    db = database.session()
    try:
        existing = db.query(User).filter(
            (User.email == email) | (User.phone_number == phone_number)
        ).first()
        if existing:
            if existing.role != UserRole.ADMIN:
                existing.role = UserRole.ADMIN
                db.commit()
                print(f"Promoted existing user {existing.email} to admin.")
            else:
                print(f"{existing.email} is already an admin.")
            return

        admin = User(
            full_name=full_name,
            email=email,
            phone_number=phone_number,
            password_hash=get_password_hash(password),
            role=UserRole.ADMIN,
            is_verified=True,
            is_active=True,
            referral_code=generate_referral_code(full_name),
        )

        db.add(admin)
        db.commit()
        db.refresh(admin)

        print(f"\nAdmin user created successfully!")
        print(f"   ID:    {admin.id}")
        print(f"   Name:  {admin.full_name}")
        print(f"   Email: {admin.email}")
        print(f"\nYou can now log in at your admin dashboard.\n")

    except Exception as e:
        db.rollback()
        print(f"Failed: {e}")
        sys.exit(1)
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    create_admin()

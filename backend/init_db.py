"""
Initialize database with a default administrator account
Run this script once to set up the database

    ADMIN_PHONE=0771234567 ADMIN_PASSWORD=... python init_db.py
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy.exc import SQLAlchemyError

from ictacademy.database import SessionLocal, engine, Base
from ictacademy.models import Profile, UserRole
from ictacademy.services.credential_resolver import CredentialResolver
from ictacademy.utils.phone import normalize_phone, mask_phone
from ictacademy.utils.security import get_password_hash


def init_database():
    """Create tables and default admin account"""

    print("=" * 60)
    print("ICT Academy API - Database Initialization")
    print("=" * 60)

    # Create all tables
    print("\n📦 Creating database tables...")
    try:
        Base.metadata.create_all(bind=engine)
        print("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        print(f"❌ Error creating tables: {str(e)}")
        return

    phone = normalize_phone(os.getenv("ADMIN_PHONE", ""))
    password = os.getenv("ADMIN_PASSWORD", "")
    if not phone or len(password) < 6:
        print("\n⚠️  Set ADMIN_PHONE and ADMIN_PASSWORD (6+ characters) to create an administrator")
        return

    db = SessionLocal()

    try:
        existing = CredentialResolver(db).find_by_phone(phone)

        if not existing:
            print("\n👤 Creating administrator account...")
            admin = Profile(
                first_name="System",
                last_name="Administrator",
                phone=phone,
                password_hash=get_password_hash(password)
            )
            db.add(admin)
            db.flush()
            db.add(UserRole(user_id=admin.id, role="admin"))
            db.commit()
            print(f"✅ Administrator created for {mask_phone(phone)}")
        else:
            has_admin = any(role.role == "admin" for role in existing.roles)
            if not has_admin:
                db.add(UserRole(user_id=existing.id, role="admin"))
                db.commit()
                print(f"✅ Admin role granted to existing account {mask_phone(phone)}")
            else:
                print(f"\n⚠️  Administrator {mask_phone(phone)} already exists")

        print("\n🚀 You can now start the backend server:")
        print("   uvicorn ictacademy.main:app --reload\n")

    except SQLAlchemyError as e:
        print(f"\n❌ Error: {str(e)}")
        db.rollback()

    finally:
        db.close()


if __name__ == "__main__":
    init_database()

"""
Create the database schema and the first reviewer account
"""
import asyncio
import os

from sqlalchemy import select

from proposal_workflow.database import engine, Base, SessionLocal
from proposal_workflow.models import User
from proposal_workflow.core.constants import UserRole


async def init_database(reset: bool = False):
    """Create tables; drop them first when reset is set"""
    print("🔄 Creating tables...")

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    print("✅ Tables created")


async def create_admin_user():
    """Seed an approved head admin who receives submission notifications"""
    email = os.environ.get("ADMIN_EMAIL", "admin@example.org")

    async with SessionLocal() as session:
        result = await session.execute(
            select(User).where(User.role.in_([UserRole.ADMIN, UserRole.HEAD_ADMIN]))
        )
        existing = result.scalars().first()

        if existing:
            print(f"⚠️  Admin already exists: {existing.email} (id={existing.id})")
            return

        admin = User(
            email=email,
            name="Proposal Reviewer",
            role=UserRole.HEAD_ADMIN,
            is_approved=True,
        )
        session.add(admin)
        await session.commit()

        print("✅ Admin user created:")
        print(f"   📧 Email: {email}")
        print(f"   🆔 Id: {admin.id} (set PROPOSAL_REVIEWER_ID to route submissions elsewhere)")


async def main():
    print("=" * 50)
    print("   Proposal Workflow - database setup")
    print("=" * 50)

    await init_database(reset=os.environ.get("RESET_DB") == "1")
    await create_admin_user()
    await engine.dispose()

    print("=" * 50)
    print("   ✅ Done")
    print("=" * 50)


if __name__ == "__main__":
    asyncio.run(main())

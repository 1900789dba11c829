from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from proposal_workflow.database import Base, get_db
from proposal_workflow.main import app
from proposal_workflow.core.constants import (
    EventStatus,
    ProposalStatus,
    ReportStatus,
    UserRole,
)
from proposal_workflow.core.security import create_access_token
from proposal_workflow.models import Proposal, User
from proposal_workflow.services.audit_service import AuditRecorder, SqlAlchemyAuditBackend
from proposal_workflow.services.notification_service import NotificationService
from proposal_workflow.services.state_machine import ProposalStateMachine

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# One connection per session, never shared between event loops
engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory():
    return TestSessionLocal


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def _make_user(session: AsyncSession, email: str, role: UserRole, is_approved: bool = True) -> User:
    user = User(email=email, name=email.split("@")[0], role=role, is_approved=is_approved)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "admin@example.org", UserRole.ADMIN)


@pytest_asyncio.fixture
async def student_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "student@example.org", UserRole.STUDENT)


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "other@example.org", UserRole.STUDENT)


@pytest_asyncio.fixture
async def unapproved_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "waiting@example.org", UserRole.STUDENT, is_approved=False)


async def make_proposal(
    session: AsyncSession,
    owner: User,
    uuid: str = "abc-123",
    status: ProposalStatus = ProposalStatus.DRAFT,
) -> Proposal:
    proposal = Proposal(
        uuid=uuid,
        user_id=owner.id,
        organization_name="Green Campus Club",
        contact_person="Ana Cruz",
        contact_email="ana@example.org",
        event_name="Campus Cleanup Drive",
        proposal_status=status,
        report_status=ReportStatus.DRAFT,
        event_status=EventStatus.SCHEDULED,
    )
    session.add(proposal)
    await session.commit()
    await session.refresh(proposal)
    return proposal


@pytest_asyncio.fixture
async def draft_proposal(db_session: AsyncSession, student_user: User, admin_user: User) -> Proposal:
    return await make_proposal(db_session, student_user)


@pytest_asyncio.fixture
async def pending_proposal(db_session: AsyncSession, student_user: User, admin_user: User) -> Proposal:
    return await make_proposal(db_session, student_user, status=ProposalStatus.PENDING)


def build_state_machine(session: AsyncSession) -> ProposalStateMachine:
    return ProposalStateMachine(
        session,
        AuditRecorder(SqlAlchemyAuditBackend(session)),
        NotificationService(session),
    )


@pytest.fixture
def state_machine(db_session: AsyncSession) -> ProposalStateMachine:
    return build_state_machine(db_session)


@pytest.fixture
def audit_recorder(state_machine: ProposalStateMachine) -> AuditRecorder:
    return state_machine.audit


@pytest.fixture
def notifier(state_machine: ProposalStateMachine) -> NotificationService:
    return state_machine.notifier


def get_auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return get_auth_headers


@pytest.fixture
def proposal_factory(db_session: AsyncSession):
    async def _create(owner: User, uuid: str, status: ProposalStatus = ProposalStatus.DRAFT) -> Proposal:
        return await make_proposal(db_session, owner, uuid=uuid, status=status)
    return _create


@pytest.fixture
def machine_factory():
    return build_state_machine

"""
Pytest Configuration and Fixtures

Every test runs against a fresh in-memory MongoDB (mongomock) with the
production indexes, so unique keys behave as they do in a deployment.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Set up test environment variables before anything imports the settings
_TMP_ROOT = tempfile.mkdtemp(prefix="reimburse-tests-")
TEST_JWT_SECRET = "test-secret-key-for-the-reimbursement-api"

os.environ["ENVIRONMENT"] = "testing"
os.environ["DEBUG"] = "false"
os.environ["MONGO_DB"] = "reimbursement_test"
os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["SIGNED_URL_SECRET"] = "test-signed-url-secret-for-downloads"
os.environ["MAIL_ENABLED"] = "false"
os.environ["FRONTEND_URL"] = "https://reimburse.example.com"
os.environ["LOGS_PATH"] = os.path.join(_TMP_ROOT, "logs")
os.environ["STORAGE_BASE_PATH"] = os.path.join(_TMP_ROOT, "storage")

import jwt
import mongomock
import pytest
from httpx import ASGITransport, AsyncClient

from app.domain.enums import Role
from app.domain.models import ActorContext, Membership, OrgContext
from app.repositories import mongo_client
from app.repositories.organization_repo import OrganizationRepository
from app.repositories.profile_repo import ProfileRepository
from app.services.organization_service import OrganizationService
from app.utils.idgen import generate_membership_id
from app.utils.time import utc_now


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Swap the global connection for a fresh mongomock database"""
    client = mongomock.MongoClient()
    database = client["reimbursement_test"]
    monkeypatch.setattr(mongo_client, "_client", client)
    monkeypatch.setattr(mongo_client, "_database", database)
    mongo_client.create_indexes()
    yield database


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    """Point voucher storage at a per-test directory"""
    from app.config.settings import settings

    path = tmp_path / "storage"
    monkeypatch.setattr(settings, "storage_base_path", str(path))
    return path


# ============================================================================
# Actors & Organization
# ============================================================================

def make_actor(key: str, name: str) -> ActorContext:
    return ActorContext(user_id=f"user-{key}", email=f"{key}@acme-corp.com", display_name=name)


@pytest.fixture
def owner() -> ActorContext:
    return make_actor("owner", "Olivia Owner")


@pytest.fixture
def admin() -> ActorContext:
    return make_actor("admin", "Adam Admin")


@pytest.fixture
def manager() -> ActorContext:
    return make_actor("manager", "Maya Manager")


@pytest.fixture
def member() -> ActorContext:
    return make_actor("member", "Milo Member")


@pytest.fixture
def finance() -> ActorContext:
    return make_actor("finance", "Fiona Finance")


@pytest.fixture
def outsider() -> ActorContext:
    return make_actor("outsider", "Oscar Outsider")


@pytest.fixture
def org_ctx(owner, admin, manager, member, finance, outsider) -> OrgContext:
    """Acme Corp with one member per role; returns the owner's context"""
    profiles = ProfileRepository()
    for actor in (owner, admin, manager, member, finance, outsider):
        profiles.upsert_from_actor(actor)

    ctx = OrganizationService().create_organization(owner, "Acme Corp")

    repo = OrganizationRepository()
    for actor, role in ((admin, Role.ADMIN), (manager, Role.MANAGER), (member, Role.MEMBER), (finance, Role.FINANCE)):
        repo.create_membership(Membership(
            membership_id=generate_membership_id(),
            org_id=ctx.org_id,
            user_id=actor.user_id,
            role=role,
            created_at=utc_now(),
        ))
    return ctx


def context_for(ctx: OrgContext, actor: ActorContext, role: Role) -> OrgContext:
    return OrgContext(actor=actor, organization=ctx.organization, role=role)


@pytest.fixture
def admin_ctx(org_ctx, admin) -> OrgContext:
    return context_for(org_ctx, admin, Role.ADMIN)


@pytest.fixture
def manager_ctx(org_ctx, manager) -> OrgContext:
    return context_for(org_ctx, manager, Role.MANAGER)


@pytest.fixture
def member_ctx(org_ctx, member) -> OrgContext:
    return context_for(org_ctx, member, Role.MEMBER)


@pytest.fixture
def finance_ctx(org_ctx, finance) -> OrgContext:
    return context_for(org_ctx, finance, Role.FINANCE)


# ============================================================================
# HTTP
# ============================================================================

def make_token(actor: ActorContext, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    """Access token shaped like the ones the auth service issues"""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": actor.user_id,
        "email": actor.email,
        "aud": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": {"full_name": actor.display_name},
    }
    payload.update(claims)
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(actor: ActorContext) -> dict:
    return {"Authorization": f"Bearer {make_token(actor)}"}


@pytest.fixture
async def async_client():
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

# tests/test_core_provisioning.py
"""
Testes do provisionamento de identidades (`isw_sso.core.provisioning`),
executados contra o banco em memória definido em `conftest.py`.
"""

# ========================
# --- Importações ---
# ========================
import asyncio
import pytest
from pymongo.errors import ServerSelectionTimeoutError

# --- Módulos da Aplicação ---
from isw_sso.core.exceptions import ProvisioningFailure
from isw_sso.core.provisioning import find_identity, provision_identity
from isw_sso.core.security import pwd_context
from isw_sso.db import profile_crud
from isw_sso.db.profile_crud import AUTH_USERS_COLLECTION, PROFILES_COLLECTION
from isw_sso.models.profile import DEFAULT_ROLE

# ====================================
# --- Marcador Global de Teste ---
# ====================================
pytestmark = pytest.mark.asyncio


# ========================
# --- Testes ---
# ========================
async def test_provision_identity_creates_auth_user_and_profile(fake_db):
    identity = await provision_identity(fake_db, "alice@example.com")

    auth_users = fake_db[AUTH_USERS_COLLECTION].documents
    profiles = fake_db[PROFILES_COLLECTION].documents
    assert len(auth_users) == 1 and len(profiles) == 1
    assert auth_users[0]["id"] == profiles[0]["id"] == str(identity.id)
    assert auth_users[0]["email_confirmed_at"] is not None, "Usuário SSO deve nascer com e-mail confirmado."
    assert profiles[0]["role"] == DEFAULT_ROLE
    assert profiles[0]["name"] == "alice"
    assert identity.email == "alice@example.com"


async def test_provisioned_user_password_is_random_bcrypt_hash(fake_db):
    await provision_identity(fake_db, "alice@example.com")

    hashed = fake_db[AUTH_USERS_COLLECTION].documents[0]["hashed_password"]
    assert hashed.startswith("$2")
    assert pwd_context.verify("", hashed) is False


async def test_provision_identity_is_idempotent_across_email_case(fake_db):
    first = await provision_identity(fake_db, "Alice@Example.com")
    second = await provision_identity(fake_db, "alice@example.com")
    third = await provision_identity(fake_db, "  ALICE@EXAMPLE.COM ")

    assert first.id == second.id == third.id
    assert await fake_db[PROFILES_COLLECTION].count_documents({"email": "alice@example.com"}) == 1
    assert len(fake_db[AUTH_USERS_COLLECTION].documents) == 1


async def test_concurrent_provisioning_yields_single_profile(mocker, fake_db):
    upsert_spy = mocker.spy(profile_crud, "upsert_auth_user")

    results = await asyncio.gather(*(provision_identity(fake_db, "bob@example.com") for _ in range(5)))

    assert upsert_spy.call_count == 5, "Todas as chamadas devem passar pela consulta antes de qualquer upsert."
    assert len({identity.id for identity in results}) == 1
    assert len(fake_db[PROFILES_COLLECTION].documents) == 1
    assert len(fake_db[AUTH_USERS_COLLECTION].documents) == 1


async def test_provision_identity_uses_nickname_when_given(fake_db):
    identity = await provision_identity(fake_db, "carol@example.com", nickname="Carol C.")

    assert identity.nickname == "Carol C."


@pytest.mark.parametrize("email", ["", "   "])
async def test_provision_identity_rejects_empty_email(fake_db, email):
    with pytest.raises(ProvisioningFailure):
        await provision_identity(fake_db, email)

    assert fake_db[PROFILES_COLLECTION].documents == []


async def test_provision_identity_wraps_database_errors(mocker, fake_db):
    mocker.patch(
        "isw_sso.db.profile_crud.get_profile_by_email",
        side_effect=ServerSelectionTimeoutError("mongo fora do ar"),
    )

    with pytest.raises(ProvisioningFailure) as excinfo:
        await provision_identity(fake_db, "alice@example.com")

    assert excinfo.value.status_code == 500


async def test_provision_identity_fails_when_profile_upsert_returns_none(mocker, fake_db):
    mocker.patch("isw_sso.db.profile_crud.upsert_profile", return_value=None)

    with pytest.raises(ProvisioningFailure):
        await provision_identity(fake_db, "alice@example.com")


async def test_find_identity_returns_none_for_unknown_email(fake_db):
    assert await find_identity(fake_db, "ninguem@example.com") is None
    assert fake_db[PROFILES_COLLECTION].documents == []


async def test_find_identity_returns_existing_identity(fake_db):
    created = await provision_identity(fake_db, "dave@example.com")

    found = await find_identity(fake_db, "DAVE@example.com")

    assert found == created

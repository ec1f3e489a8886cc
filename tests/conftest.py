# tests/conftest.py
# Inibir warnings de depreciação de bibliotecas
import warnings
warnings.filterwarnings("ignore", category=DeprecationWarning, module="passlib")

# ========================
# --- Configuração .env.test ---
# ========================
from dotenv import load_dotenv
import os
load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), '.env.test'))

"""
Este módulo define fixtures do Pytest compartilhadas pela suíte de testes
da ponte SSO.

Fixtures incluem:
- Um banco de dados em memória (`fake_db`) que imita a API assíncrona do
  Motor usada pelos módulos `isw_sso.db.*`. Dispensa um MongoDB real.
- Cliente HTTP assíncrono (`test_async_client`) para a aplicação FastAPI,
  com a dependência `get_database` substituída pelo `fake_db`.
- Um gerador de tokens no formato do Hub (`make_hub_token`).
"""

# ========================
# --- Importações ---
# ========================
import asyncio
import copy
import logging
import uuid
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

# --- Módulos da Aplicação ---
from isw_sso.core.cipher import build_plaintext, encrypt_token
from isw_sso.core.config import settings
from isw_sso.db.mongodb_utils import get_database
from isw_sso.main import app as fastapi_app

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)

ALICE_EMAIL = "alice@example.com"


# ========================
# --- Banco de Dados em Memória ---
# ========================
def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for field, condition in query.items():
        value = document.get(field)
        if isinstance(condition, dict):
            for operator, argument in condition.items():
                if operator == "$gt":
                    if value is None or not value > argument:
                        return False
                else:
                    raise NotImplementedError(f"Operador {operator} não suportado pelo FakeCollection")
        elif value != condition:
            return False
    return True


class FakeInsertOneResult:
    def __init__(self, inserted_id: Any):
        self.inserted_id = inserted_id
        self.acknowledged = True


class FakeCollection:
    """Subconjunto da API de `AsyncIOMotorCollection` usado pela aplicação."""

    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.unique_fields: set = set()
        self.indexes: List[Dict[str, Any]] = []

    def _check_unique(self, candidate: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        for field in self.unique_fields:
            for existing in self.documents:
                if existing is ignore:
                    continue
                if field in candidate and existing.get(field) == candidate.get(field):
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} index: {field}")

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        # Cede o loop como o driver real; o corpo após o await é atômico.
        await asyncio.sleep(0)
        for document in self.documents:
            if _matches(document, query):
                return copy.deepcopy(document)
        return None

    async def insert_one(self, document: Dict[str, Any]) -> FakeInsertOneResult:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        self._check_unique(stored)
        self.documents.append(stored)
        return FakeInsertOneResult(stored["_id"])

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        for document in self.documents:
            if _matches(document, query):
                before = copy.deepcopy(document)
                document.update(copy.deepcopy(update.get("$set", {})))
                return copy.deepcopy(document) if return_document == ReturnDocument.AFTER else before

        if not upsert:
            return None

        created = {field: value for field, value in query.items() if not isinstance(value, dict)}
        created.update(copy.deepcopy(update.get("$setOnInsert", {})))
        created.update(copy.deepcopy(update.get("$set", {})))
        created["_id"] = uuid.uuid4().hex
        self._check_unique(created)
        self.documents.append(created)
        return copy.deepcopy(created) if return_document == ReturnDocument.AFTER else None

    async def count_documents(self, query: Dict[str, Any]) -> int:
        return sum(1 for document in self.documents if _matches(document, query))

    async def create_index(self, keys: str, unique: bool = False, **kwargs) -> str:
        if unique:
            self.unique_fields.add(keys)
        self.indexes.append({"keys": keys, "unique": unique, **kwargs})
        return kwargs.get("name", f"{keys}_1")


class FakeDatabase:
    """Coleções criadas sob demanda, como em `AsyncIOMotorDatabase`."""

    def __init__(self, name: str = "isw_sso_test_db"):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, collection_name: str) -> FakeCollection:
        if collection_name not in self.collections:
            self.collections[collection_name] = FakeCollection(collection_name)
        return self.collections[collection_name]


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase(settings.DATABASE_NAME)


# ========================
# --- Fixture Principal: Cliente de Teste HTTP ---
# ========================
@pytest_asyncio.fixture(scope="function")
async def test_async_client(fake_db: FakeDatabase) -> AsyncGenerator[AsyncClient, None]:
    """
    Cliente HTTP (`AsyncClient` + `ASGITransport`) para a aplicação FastAPI.

    O ASGITransport não executa o lifespan, então nenhuma conexão real é
    aberta: `get_database` é sobrescrita para devolver o `fake_db`.
    """
    fastapi_app.dependency_overrides[get_database] = lambda: fake_db
    try:
        transport = ASGITransport(app=fastapi_app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        fastapi_app.dependency_overrides.pop(get_database, None)


# ========================
# --- Tokens no Formato do Hub ---
# ========================
@pytest.fixture
def make_hub_token() -> Callable[..., str]:
    """Gera tokens como o Hub gera, cifrados com a chave de teste."""
    def _make(
        email: str = ALICE_EMAIL,
        opaque_id: str = "tok123",
        user_id: str = "u1",
        key: Optional[str] = None,
    ) -> str:
        plaintext = build_plaintext(opaque_id, user_id, email)
        return encrypt_token(plaintext, key or settings.SSO_ENCRYPTION_KEY)
    return _make

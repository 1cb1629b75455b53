import os
from typing import Any, Dict, List, Optional

# Keep the module-level engine off disk; tests bind their own engine below
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lingolab import models  # noqa: F401
from lingolab.auth_provider import AuthProviderError, get_auth_provider_factory
from lingolab.db import Base, get_db, get_session_factory
from lingolab.llm_client import LLMError, get_llm_factory
from lingolab.main import app
from lingolab.settings import settings
from lingolab.storage import StorageUploadError, get_storage_factory


class FakeLLM:
	"""Stands in for AzureOpenAIClient; replies are queued per schema name."""

	def __init__(self) -> None:
		self.objects: Dict[str, Any] = {}
		self.deltas: List[str] = ["Hallo", "! Wie geht's?"]
		self.speech = b"ID3-fake-mp3"
		self.fail: Optional[str] = None
		self.prompts: List[str] = []
		self.systems: List[Optional[str]] = []
		self.closed = 0

	async def generate_object(self, prompt, schema, *, system=None, deployment=None):
		self.prompts.append(prompt)
		self.systems.append(system)
		if self.fail:
			raise LLMError(self.fail)
		return schema.model_validate(self.objects[schema.__name__])

	async def stream_chat(self, system, messages, *, deployment=None):
		self.systems.append(system)
		self.prompts.append(messages[-1]["content"] if messages else "")
		if self.fail:
			raise LLMError(self.fail)
		for delta in self.deltas:
			yield delta

	async def synthesize_speech(self, text, *, instructions=None):
		self.prompts.append(text)
		if self.fail:
			raise LLMError(self.fail)
		return self.speech

	async def aclose(self):
		self.closed += 1


class FakeStorage:
	def __init__(self) -> None:
		self.url = "https://audio.example.com/uploaded.mp3"
		self.fail = False
		self.uploads: List[Dict[str, Any]] = []

	async def upload_audio(self, audio, *, file_name, audio_id, metadata):
		self.uploads.append({"file_name": file_name, "audio_id": audio_id, "metadata": metadata, "size": len(audio)})
		if self.fail:
			raise StorageUploadError("worker returned 502")
		return self.url

	async def aclose(self):
		pass


class FakeClerk:
	def __init__(self) -> None:
		self.users: Dict[str, Dict[str, Any]] = {}
		self.updates: List[tuple] = []
		self.fail = False

	async def get_user(self, user_id):
		return {"id": user_id, "public_metadata": dict(self.users.get(user_id, {}))}

	async def set_public_metadata(self, user_id, public_metadata):
		if self.fail:
			raise AuthProviderError("Clerk PATCH returned 503")
		self.updates.append((user_id, public_metadata))
		self.users[user_id] = dict(public_metadata)
		return {"id": user_id, "public_metadata": public_metadata}

	async def aclose(self):
		pass


@pytest.fixture
def session_factory():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	Base.metadata.create_all(bind=engine)
	factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
	yield factory
	engine.dispose()


@pytest.fixture
def db(session_factory):
	session = session_factory()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def llm():
	return FakeLLM()


@pytest.fixture
def storage():
	return FakeStorage()


@pytest.fixture
def clerk():
	return FakeClerk()


@pytest.fixture
def client(session_factory, llm, storage, clerk):
	def _get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	app.dependency_overrides[get_db] = _get_db
	app.dependency_overrides[get_session_factory] = lambda: session_factory
	app.dependency_overrides[get_llm_factory] = lambda: (lambda: llm)
	app.dependency_overrides[get_storage_factory] = lambda: (lambda: storage)
	app.dependency_overrides[get_auth_provider_factory] = lambda: (lambda: clerk)
	try:
		yield TestClient(app)
	finally:
		app.dependency_overrides.clear()


def make_token(user_id: str) -> str:
	return jwt.encode({"sub": user_id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
def auth_headers():
	return {"Authorization": f"Bearer {make_token('user_1')}"}

import os

os.environ.setdefault("GEMINI_API_KEY", "test-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from problem_tutor import models  # noqa: F401  registers tables
from problem_tutor.db import Base, get_session_factory
from problem_tutor.errors import GatewayError
from problem_tutor.gemini_client import get_gateway
from problem_tutor.main import app
from problem_tutor.settings import settings


BAKERY_PROBLEM = {
	"problem_text": "A bakery sold 45 cupcakes and 12 muffins. How many baked goods in total?",
	"correct_answer": 57,
}


class FakeGateway:
	"""Scripted stand-in for GeminiClient that records every call."""

	def __init__(self, result=None, fragments=(), fail_at=None, once_error=None):
		self.result = result if result is not None else dict(BAKERY_PROBLEM)
		self.fragments = list(fragments)
		# index of the fragment at which the stream raises; len(fragments) fails after the last one
		self.fail_at = fail_at
		self.once_error = once_error
		self.calls = []

	async def generate_once(self, request):
		self.calls.append(("once", request))
		if self.once_error is not None:
			raise self.once_error
		return dict(self.result)

	async def generate_stream(self, request):
		self.calls.append(("stream", request))
		for i, fragment in enumerate(self.fragments):
			if self.fail_at == i:
				raise GatewayError("model stream dropped")
			yield fragment
		if self.fail_at is not None and self.fail_at >= len(self.fragments):
			raise GatewayError("model stream dropped")


@pytest.fixture(autouse=True)
def _no_fallback(monkeypatch):
	monkeypatch.setattr(settings, "openrouter_api_key", None)


@pytest.fixture
def session_factory():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(bind=engine)
	yield sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
	engine.dispose()


@pytest.fixture
def gateway():
	return FakeGateway(fragments=["Great ", "job!"])


@pytest.fixture
def client(gateway, session_factory):
	app.dependency_overrides[get_gateway] = lambda: gateway
	app.dependency_overrides[get_session_factory] = lambda: session_factory
	yield TestClient(app)
	app.dependency_overrides.clear()

import pytest
from fastapi.testclient import TestClient

import main
from fakes import USER, FakeDatabase, FakeEntryRepo, FakeFieldTypeRepo
from service_entries import EntryService
from service_field_types import FieldTypeRegistry


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def field_type_repo():
    return FakeFieldTypeRepo()


@pytest.fixture
def registry(fake_db, field_type_repo):
    return FieldTypeRegistry(field_type_repo, connect=fake_db.connect)


@pytest.fixture
def entry_service(fake_db, registry):
    return EntryService(FakeEntryRepo(), registry, connect=fake_db.connect)


@pytest.fixture
def client(monkeypatch, registry, entry_service):
    monkeypatch.setattr(main, "registry", registry)
    monkeypatch.setattr(main, "svc", entry_service)
    monkeypatch.setattr(main.settings, "default_user", USER)
    return TestClient(main.app)

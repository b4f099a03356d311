"""Pytest configuration for the document sharing API tests."""
import os

# Configure the app before it is imported: in-memory SQLite shared by every session
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from nutrivault import config
from nutrivault.database import Base, SessionLocal, engine
from nutrivault.main import app
from nutrivault.models import Document, DocumentShare, Patient, User, utc_now
from nutrivault.rate_limiter import PasswordAttemptLimiter
from nutrivault.security_utils import create_jwt_token, generate_share_token, hash_password_bcrypt

PDF_BYTES = b"%PDF-1.4\n% test document\n1 0 obj << >> endobj\ntrailer << >>\n%%EOF\n"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def uploads_dir(tmp_path, monkeypatch):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    monkeypatch.setattr(config, "UPLOADS_DIR", uploads)
    return uploads


@pytest.fixture
def limiter():
    return PasswordAttemptLimiter(max_attempts=10, window_seconds=900)


@pytest.fixture
def client(db, uploads_dir, limiter):
    app.state.password_limiter = limiter
    with TestClient(app) as test_client:
        # The lifespan installs a fresh limiter; use the one the test controls
        app.state.password_limiter = limiter
        yield test_client


@pytest.fixture
def staff_user(db):
    user = User(email="dietitian@example.com", full_name="Dana Dietitian", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(staff_user):
    token = create_jwt_token({"sub": str(staff_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient(db):
    patient = Patient(first_name="John", last_name="Doe", email="john@example.com")
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


@pytest.fixture
def make_document(db, uploads_dir, staff_user):
    def _make(
        file_name="meal-plan.pdf",
        mime_type="application/pdf",
        content=PDF_BYTES,
        write_file=True,
        is_active=True,
    ):
        relative_path = f"patient/2024-01-15/{file_name}"
        if write_file:
            target = uploads_dir / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        document = Document(
            file_name=file_name,
            file_path=relative_path,
            file_size=len(content),
            mime_type=mime_type,
            description="Weekly meal plan",
            is_active=is_active,
            uploaded_by=staff_user.id,
        )
        db.add(document)
        db.commit()
        db.refresh(document)
        return document

    return _make


@pytest.fixture
def document(make_document):
    return make_document()


@pytest.fixture
def make_share(db, document, patient, staff_user):
    def _make(password=None, target_document=None, **fields):
        share = DocumentShare(
            token=fields.pop("token", None) or generate_share_token(),
            document_id=(target_document or document).id,
            patient_id=fields.pop("patient_id", patient.id),
            created_by=staff_user.id,
            password_hash=hash_password_bcrypt(password) if password else None,
            **fields,
        )
        db.add(share)
        db.commit()
        db.refresh(share)
        return share

    return _make


@pytest.fixture
def past():
    return utc_now() - timedelta(hours=1)


@pytest.fixture
def future():
    return utc_now() + timedelta(days=7)

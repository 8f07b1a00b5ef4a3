import base64
import io
import os
import tempfile

# La configuración se lee al importar la app: apuntar todo a SQLite y a un
# directorio temporal antes de cualquier import de projectsign
_TEST_DIR = tempfile.mkdtemp(prefix="projectsign-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DIR, 'app.db')}")
os.environ.setdefault("SIGNATURE_STORAGE_DIR", os.path.join(_TEST_DIR, "signatures"))
os.environ.setdefault("ENABLE_MAINTENANCE_JOB", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("APP_URL", "https://app.projectsign.test")

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from projectsign.create_tables import crear_tablas
from projectsign.database import get_db
from projectsign.main import app
from projectsign.modules.auth.models.user import User
from projectsign.modules.auth.services.auth_service import AuthService
from projectsign.modules.forms.services.form_service import FormService
from projectsign.modules.notifications.services.notification_service import (
    NotificationService, get_notification_service
)
from projectsign.modules.notifications.services.senders import DispatchResult
from projectsign.modules.projects.schemas.project_schemas import ProjectCreate
from projectsign.modules.projects.services.project_service import ProjectService
from projectsign.modules.storage.services.signature_storage import (
    LocalSignatureStorage, get_signature_storage
)

PUBLIC_BASE_URL = "http://testserver/signatures"


class FakeSender:
    """Sender en memoria: guarda los mensajes y devuelve un resultado fijo."""

    def __init__(self, result=None):
        self.result = result or DispatchResult(True)
        self.sent = []

    def send(self, message):
        self.sent.append(message)
        return self.result


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False}
    )
    crear_tablas(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalSignatureStorage(str(tmp_path / "signatures"), PUBLIC_BASE_URL)


@pytest.fixture
def email_sender():
    return FakeSender()


@pytest.fixture
def sms_sender():
    return FakeSender()


@pytest.fixture
def notifications(email_sender, sms_sender):
    return NotificationService(email_sender, sms_sender, expiry_hours=48)


@pytest.fixture
def client(session_factory, storage, notifications):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_signature_storage] = lambda: storage
    app.dependency_overrides[get_notification_service] = lambda: notifications
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_user(session, email="owner@example.com", password="secret123", full_name="Owner Test"):
    user = User(
        full_name=full_name,
        email=email,
        password_hash=AuthService.get_password_hash(password),
        is_active=True
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def register_and_login(client, email="owner@example.com", password="secret123", full_name="Owner Test"):
    resp = client.post("/auth/register", json={"email": email, "password": password, "full_name": full_name})
    assert resp.status_code == 201, resp.text
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def png_bytes(size=(300, 120), strokes=True):
    img = Image.new("RGBA", size, (255, 255, 255, 0))
    if strokes:
        draw = ImageDraw.Draw(img)
        w, h = size
        points = [(10 + i * (w - 20) / 12, h / 2 + (h / 3) * (-1) ** i) for i in range(13)]
        draw.line(points, fill=(10, 20, 120, 255), width=4)
        draw.ellipse((w / 4, h / 4, w / 2, 3 * h / 4), outline=(0, 0, 0, 255), width=3)
        draw.line((15, h - 15, w - 15, h - 25), fill=(200, 30, 30, 255), width=2)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def signature_data_uri(**kwargs):
    return "data:image/png;base64," + base64.b64encode(png_bytes(**kwargs)).decode("ascii")


@pytest.fixture
def signature_data():
    return signature_data_uri()


@pytest.fixture
def quote_data():
    return {
        "items": [
            {"id": "1", "description": "צביעת קירות", "quantity": 2, "unit": "יום",
             "unit_price": 1500, "total": 3000},
            {"id": "2", "description": "חומרים", "quantity": 1, "unit": "קומפלט",
             "unit_price": 800, "total": 800},
        ],
        "subtotal": 3800,
        "vat_amount": 646,
        "total": 4446,
        "valid_until": "2026-12-31",
        "payment_terms": "שוטף + 30",
    }


@pytest.fixture
def work_approval_data():
    return {
        "site_name": "דירה ברחוב הרצל",
        "start_date": "2026-11-01",
        "work_details": "צביעה וטיח",
        "contact_name": "דנה כהן",
        "contact_phone": "050-123-4567",
        "infrastructure_declaration": True,
    }


@pytest.fixture
def completion_data():
    return {
        "site_name": "דירה ברחוב הרצל",
        "work_date": "2026-11-20",
        "legal_disclaimer_accepted": True,
    }


@pytest.fixture
def payment_data():
    return {
        "completion_id": "12",
        "amount_due": 4446,
        "amount_paid": 4446,
        "payment_method": "transfer",
        "paid_at": "2026-11-25",
        "remaining_balance": 0,
    }


@pytest.fixture
def owner(session):
    return create_user(session)


@pytest.fixture
def project(session, owner):
    data = ProjectCreate(
        name="שיפוץ דירה",
        description="צביעה וטיח",
        contact={"name": "דנה כהן", "phone": "050-1234567", "email": "dana@example.com"},
    )
    return ProjectService.create_project(session, owner.id, data)


@pytest.fixture
def make_form(session, owner, project):
    def _make(form_type, data):
        return FormService.create_form(session, owner.id, project.id, form_type, data)
    return _make


@pytest.fixture
def auth_headers(client):
    return register_and_login(client)


@pytest.fixture
def other_headers(client):
    return register_and_login(client, email="other@example.com", full_name="Other Owner")

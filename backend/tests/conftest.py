"""
Pytest fixtures for PrintDesk backend tests.

Each test gets its own app on a temporary SQLite file and upload directory.
Tests run inside that app's context, so services can be called directly;
routes are exercised through the Flask test client.
"""

from decimal import Decimal

import pytest

from printdesk import create_app
from printdesk.extensions import db
from printdesk.schemas import PrintOptions
from printdesk.services import auth_service, order_service
from printdesk.services.ingestion_service import ingest
from printdesk.services.settings_service import save_payment_settings


ADMIN_PASSWORD = "Password123!"
MERCHANT_KEY = "test-merchant-key"


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_DIR': str(tmp_path / 'uploads'),
        'ALLOWED_FILE_TYPES': ['pdf', 'doc', 'docx', 'jpg', 'jpeg', 'png'],
        'MAX_FILE_SIZE': 25 * 1024 * 1024,
        'MAX_CONTENT_LENGTH': 64 * 1024 * 1024,
        'CANCELLATION_WINDOW_SECONDS': 30,
        'FILE_RETENTION_HOURS': 24,
        'SCANNER_TIMEOUT_SECONDS': 1,
        'BCRYPT_ROUNDS': 4,
        'PAYMENT_CALLBACK_URL': 'http://localhost:5000/api/payment/callback',
        'LOG_DIR': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def upload_dir(app, tmp_path):
    return tmp_path / 'uploads'


@pytest.fixture(scope='function')
def admin(db_session):
    """Operator account with ADMIN_PASSWORD."""
    return auth_service.create_admin("operator", ADMIN_PASSWORD, name="Front Desk")


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    token = get_auth_token(client, "operator", ADMIN_PASSWORD)
    assert token, "login failed in fixture"
    return auth_headers(token)


@pytest.fixture(scope='function')
def payment_settings(db_session):
    """Payments enabled in TEST mode with a known merchant key."""
    return save_payment_settings(
        payment_enabled=True,
        merchant_id="MID0001",
        merchant_key=MERCHANT_KEY,
        environment="TEST",
        actor="admin:operator",
    )


def make_order(roll_number="21CS001", pages=(1, 2, 3), color=False, copies=1, data=b"%PDF-1.4 test", name="notes.pdf"):
    """Ingest a small file and create a correctly priced order for it."""
    options = PrintOptions(color=color, double_sided=False, copies=copies)
    breakdown = order_service.compute_breakdown(options, total_pages=0, selected_pages=list(pages))
    file_ref = ingest(data, name, "application/pdf")
    return order_service.create_order(
        roll_number=roll_number,
        file_ref=file_ref,
        print_options=options,
        total_pages=breakdown.total_pages,
        color_pages=breakdown.color_pages,
        bw_pages=breakdown.bw_pages,
        price=breakdown.total,
        selected_pages=list(pages),
        actor=f"customer:{roll_number}",
    )


@pytest.fixture(scope='function')
def order(db_session):
    """Three-page B&W order: 3 x 1.00 + 3 x 0.20 = 3.60."""
    o = make_order()
    assert o.price_decimal == Decimal("3.60")
    return o


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for an admin."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}

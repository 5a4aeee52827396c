import os
import time

from printdesk.models import AdminUser
from printdesk.services import auth_service
from printdesk.services.storage_service import get_blob_store


def test_create_and_list_admins(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["admins", "create", "--username", "desk", "--password", "Password123!"])
    assert result.exit_code == 0, result.output
    assert "Created admin 'desk'" in result.output
    assert db_session.query(AdminUser).filter_by(username="desk").count() == 1

    result = runner.invoke(args=["admins", "list"])
    assert "desk" in result.output
    assert "never" in result.output


def test_create_admin_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=["admins", "create", "--username", "desk", "--password", "weak"])
    assert result.exit_code != 0
    assert "at least 8 characters" in result.output
    assert auth_service.list_admins() == []


def test_sweep_files(app, upload_dir):
    store = get_blob_store()
    blob = store.put(b"x", "old.pdf")
    ts = time.time() - 3 * 3600
    os.utime(store.path_for(blob.key), (ts, ts))

    runner = app.test_cli_runner()
    assert "Deleted 0 expired file(s)." in runner.invoke(args=["maintenance", "sweep-files"]).output
    result = runner.invoke(args=["maintenance", "sweep-files", "--max-age-hours", "2"])
    assert "Deleted 1 expired file(s)." in result.output
    assert not store.exists(blob.key)


def test_cleanup_sessions(app, admin):
    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-sessions"])
    assert result.exit_code == 0
    assert "Deleted 0 session(s)." in result.output

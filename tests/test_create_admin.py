import importlib.util
from pathlib import Path

import pytest

from participium.auth import authenticate_user, decode_access_token
from participium.database import async_session_factory

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "create_admin.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("create_admin", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.asyncio
async def test_create_admin_prints_credentials(db, monkeypatch, capsys):
    monkeypatch.setenv("ADMIN_USERNAME", "root-admin")
    monkeypatch.setenv("ADMIN_PASSWORD", "bootstrap-pass")
    await _load_script().create_admin()

    out = capsys.readouterr().out
    assert out.startswith("ADMIN_CREATED")
    assert "username: root-admin" in out
    token = out.strip().splitlines()[-1].split("access_token: ", 1)[1]
    assert decode_access_token(token).role == "administrator"

    async with async_session_factory() as session:
        admin = await authenticate_user("root-admin", "bootstrap-pass", session)
    assert admin is not None
    assert admin.role == "administrator"

import os
import sys
import tempfile
from pathlib import Path

REPO_ROOT = Path(__file__).parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

# Set environment variables BEFORE importing app modules: settings are cached
# on first use and the database engine is created at import time.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="participium-tests-"))

os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key-for-pytest-only-12345"
# A file database so every session (and every event loop) sees the same data
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_TEST_DIR / 'test.db').as_posix()}"
os.environ["STORAGE_DIR"] = str(_TEST_DIR / "storage")
os.environ["ASSIGNMENT_POLICY"] = "least_loaded"
os.environ["GEOCODER_URL"] = "http://geocoder.test"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ.pop("TELEGRAM_BOT_TOKEN", None)
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("SMTP_HOST", None)

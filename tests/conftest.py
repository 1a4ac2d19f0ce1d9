import os
import pytest


@pytest.fixture(autouse=True)
def clean_encryption_env(monkeypatch):
    """Keep host ENCRYPTION_*, DEV_MODE and DATABASE_URL variables out of every test."""
    for k in list(os.environ.keys()):
        if k.startswith("ENCRYPTION_") or k in ("DEV_MODE", "DATABASE_URL"):
            monkeypatch.delenv(k)
    yield

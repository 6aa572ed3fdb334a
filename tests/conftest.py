import os
import tempfile

# Settings and the logger are read at import time: configure before importing the app
_TMP = tempfile.mkdtemp(prefix="basma_clinic_tests_")
os.environ["LOGS_DIR"] = os.path.join(_TMP, "logs")
os.environ["DRAFTS_DIR"] = os.path.join(_TMP, "drafts")
os.environ["RECORD_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RECONCILE_ENABLED"] = "false"
os.environ["APP_DEBUG"] = "false"

import pytest

from basma_clinic.database import MemoryBackend, use_backend
from basma_clinic.services.bilingual_service import BilingualNormalizer


@pytest.fixture(autouse=True)
def backend():
    """Fresh in-memory record store for every test."""
    store = MemoryBackend()
    use_backend(store)
    yield store
    use_backend(None)


@pytest.fixture
def normalizer():
    return BilingualNormalizer()

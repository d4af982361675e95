import os

# Settings are read at import time; point them at an in-memory database and
# keep the scheduler off before anything from leadmail is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_IMPORT_WORKER_ENABLED"] = "false"
os.environ["ADMIN_API_KEYS"] = ""
os.environ.pop("REPL_IDENTITY", None)
os.environ.pop("WEB_REPL_RENEWAL", None)
os.environ.pop("REPLIT_CONNECTORS_HOSTNAME", None)

import pytest

from leadmail.db import Base, SessionLocal, engine
import leadmail.models  # noqa: F401,E402
from leadmail.models import EmailSource


@pytest.fixture()
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def make_source(db_session):
    def _make(**overrides):
        values = {
            "agency_id": "agency-1",
            "provider": "tokko",
            "provider_name": "Tokko Broker",
            "sender_emails": ["avisos@tokkobroker.com"],
            "default_seller_id": "seller-7",
        }
        values.update(overrides)
        source = EmailSource(**values)
        db_session.add(source)
        db_session.commit()
        return source

    return _make

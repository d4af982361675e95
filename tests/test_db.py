import pytest

from leadmail.db import _build_sqlalchemy_url, get_db, init_db
from leadmail.models import EmailSource


@pytest.mark.parametrize("raw", ["", "   ", "not a database url"])
def test_bad_database_url_fails_fast(raw):
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        _build_sqlalchemy_url(raw)


def test_database_url_is_parsed():
    url = _build_sqlalchemy_url("postgresql+psycopg2://user:secret@db:5432/leadmail")

    assert url.get_backend_name() == "postgresql"
    assert url.database == "leadmail"


def test_get_db_rolls_back_on_error(db_session):
    init_db()
    dependency = get_db()
    db = next(dependency)
    db.add(EmailSource(agency_id="agency-1", provider="tokko", sender_emails=["a@b.example"]))
    db.flush()

    with pytest.raises(RuntimeError):
        dependency.throw(RuntimeError("request failed"))

    assert db_session.query(EmailSource).count() == 0

import pytest
from dateutil.relativedelta import relativedelta

from leadmail.db import SessionLocal
from leadmail.errors import AuthError, MailApiError
from leadmail.ingestion.cursor import advance_cursor
from leadmail.ingestion.leads import create_lead_from_email
from leadmail.ingestion.ledger import list_import_logs, record_import
from leadmail.ingestion.services import (
    NO_NAME_ERROR,
    check_gmail_connection,
    process_source,
    run_email_import_for_agency,
    run_email_import_for_all_agencies,
)
from leadmail.models import EmailImportLog, EmailSource, Lead
from leadmail.parsers import ParsedLead

from tests.fakes import FakeMailClient, mail

JUAN = "\n".join(
    [
        "Hay una nueva consulta de Juan Pérez",
        "Correo electrónico: juan@example.com",
        "Móvil: +52 998 123 4567",
        "Mensaje: Me interesa la casa en Cancún",
    ]
)
JUAN_AGAIN = "\n".join(
    [
        "Hay una nueva consulta de Juan P.",
        "Teléfono: 998-123-4567",
        "Mensaje: ¿Tienen algo más cerca de la playa?",
    ]
)
MARIA = "\n".join(
    [
        "Hay una nueva consulta de María López",
        "Email: maria@example.com",
        "Teléfono: 55 1234 5678",
    ]
)
NO_NAME = "Gracias por usar nuestro servicio.\nTeléfono: 998 000 1111"


def test_new_message_creates_lead_and_ledger_entry(db_session, make_source):
    source = make_source()
    client = FakeMailClient([mail("m1", JUAN, subject="Nueva consulta por Casa en Cancún - Código 77")])

    totals = process_source(db_session, source, client)

    assert (totals.imported, totals.duplicates, totals.errors) == (1, 0, 0)

    lead = db_session.query(Lead).one()
    assert (lead.first_name, lead.last_name) == ("Juan", "Pérez")
    assert lead.email == "juan@example.com"
    assert lead.phone == "9981234567"
    assert lead.phone_last4 == "4567"
    assert lead.source == "Tokko Broker"
    assert lead.status == "nuevo_lead"
    assert lead.registration_type == "seller"
    assert lead.seller_id == "seller-7"
    assert lead.created_by == "seller-7"
    assert lead.notes == "Mensaje original: Me interesa la casa en Cancún"
    assert lead.desired_property == "Casa en Cancún"
    assert lead.valid_until == lead.first_contact_date + relativedelta(months=3)

    entry = db_session.query(EmailImportLog).one()
    assert entry.status == "success"
    assert entry.lead_id == lead.id
    assert entry.gmail_message_id == "m1"
    assert entry.gmail_thread_id == "t-m1"
    assert entry.parsed_data["email"] == "juan@example.com"

    assert source.total_imported == 1
    assert source.last_sync_message_id == "m1"
    assert source.last_sync_at is not None
    assert client.list_calls[0] == {"sender_emails": ["avisos@tokkobroker.com"], "stop_at": None}


def test_reprocessing_same_message_is_a_no_op(db_session, make_source):
    source = make_source()
    client = FakeMailClient([mail("m1", JUAN)])
    process_source(db_session, source, client)

    # Forget the watermark so the message is listed again.
    source.last_sync_message_id = None
    db_session.commit()
    client.fetched.clear()

    totals = process_source(db_session, source, client)

    assert (totals.imported, totals.duplicates, totals.errors, totals.skipped) == (0, 0, 0, 1)
    assert client.fetched == []
    assert db_session.query(Lead).count() == 1
    assert db_session.query(EmailImportLog).count() == 1
    assert (source.total_imported, source.total_duplicates, source.total_errors) == (1, 0, 0)


def test_second_email_with_same_phone_is_duplicate(db_session, make_source):
    source = make_source()
    client = FakeMailClient([mail("m1", JUAN)])
    process_source(db_session, source, client)
    original = db_session.query(Lead).one()

    client.add(mail("m2", JUAN_AGAIN))
    totals = process_source(db_session, source, client)

    assert totals.duplicates == 1
    assert client.list_calls[-1]["stop_at"] == "m1"
    assert db_session.query(Lead).count() == 1
    entry = db_session.query(EmailImportLog).filter_by(gmail_message_id="m2").one()
    assert entry.status == "duplicate"
    assert entry.duplicate_of_lead_id == original.id
    assert entry.duplicate_reason == "matching_phone"
    assert source.total_duplicates == 1
    assert source.last_sync_message_id == "m2"


def test_unparseable_message_is_logged_as_parse_error(db_session, make_source):
    source = make_source()

    totals = process_source(db_session, source, FakeMailClient([mail("m1", NO_NAME)]))

    assert totals.errors == 1
    assert db_session.query(Lead).count() == 0
    entry = db_session.query(EmailImportLog).one()
    assert entry.status == "parse_error"
    assert entry.error_message == NO_NAME_ERROR
    assert entry.parsed_data is None
    assert source.total_errors == 1


def test_one_failing_message_does_not_stop_the_batch(db_session, make_source):
    source = make_source()
    client = FakeMailClient([mail("m3", MARIA), mail("m2", JUAN), mail("m1", JUAN_AGAIN)])
    client.fail_fetch["m2"] = RuntimeError("boom")

    totals = process_source(db_session, source, client)

    assert (totals.imported, totals.duplicates, totals.errors) == (2, 0, 1)
    failed = db_session.query(EmailImportLog).filter_by(gmail_message_id="m2").one()
    assert failed.status == "parse_error"
    assert failed.error_message == "boom"
    assert failed.email_subject is None
    assert source.last_sync_message_id == "m3"
    assert (source.total_imported, source.total_errors) == (2, 1)


def test_watermark_untouched_when_nothing_new(db_session, make_source):
    source = make_source()
    client = FakeMailClient([mail("m2", MARIA), mail("m1", JUAN)])
    process_source(db_session, source, client)
    assert source.last_sync_message_id == "m2"

    totals = process_source(db_session, source, client)

    assert totals.imported == 0
    assert client.list_calls[-1]["stop_at"] == "m2"
    assert source.last_sync_message_id == "m2"
    assert source.total_imported == 2


def test_source_without_senders_is_skipped(db_session, make_source):
    source = make_source(sender_emails=[])
    client = FakeMailClient([mail("m1", JUAN)])

    totals = process_source(db_session, source, client)

    assert totals.imported == 0
    assert client.list_calls == []


def test_unknown_provider_uses_generic_parser(db_session, make_source):
    source = make_source(provider="vivanuncios", default_source="Vivanuncios")
    body = "Carlos Ruiz quiere agendar una visita.\ncarlos@example.com\n+52 55 8765 4321"

    process_source(db_session, source, FakeMailClient([mail("m1", body)]))

    lead = db_session.query(Lead).one()
    assert (lead.first_name, lead.last_name) == ("Carlos", "Ruiz")
    assert lead.phone == "5587654321"
    assert lead.source == "Email Import"


class SelectiveFailureClient(FakeMailClient):
    def list_candidate_messages(self, sender_emails, since=None, stop_at=None):
        if "broken@portal.example" in sender_emails:
            raise MailApiError("Gmail messages.list failed: 500")
        return super().list_candidate_messages(sender_emails, since=since, stop_at=stop_at)


def test_failing_source_does_not_stop_other_sources(db_session, make_source):
    broken = make_source(sender_emails=["broken@portal.example"])
    healthy = make_source()
    client = SelectiveFailureClient([mail("m1", JUAN)])

    totals = run_email_import_for_agency("agency-1", session_factory=SessionLocal, mail_client=client)

    assert (totals.imported, totals.errors) == (1, 1)
    db_session.expire_all()
    assert broken.total_errors == 1
    assert broken.last_sync_message_id is None
    assert healthy.total_imported == 1
    assert healthy.last_sync_message_id == "m1"


def test_failure_bookkeeping_error_does_not_stop_other_sources(db_session, make_source, caplog):
    make_source(sender_emails=["broken@portal.example"])
    healthy = make_source()
    sessions_opened = []

    def flaky_session_factory():
        sessions_opened.append(1)
        # Third session is the one that records the broken source's failure.
        if len(sessions_opened) == 3:
            raise RuntimeError("database unavailable")
        return SessionLocal()

    totals = run_email_import_for_agency(
        "agency-1",
        session_factory=flaky_session_factory,
        mail_client=SelectiveFailureClient([mail("m1", JUAN)]),
    )

    assert (totals.imported, totals.errors) == (1, 1)
    db_session.expire_all()
    assert healthy.total_imported == 1
    assert "Could not record the failure for source" in caplog.text


def test_auth_error_aborts_the_run(db_session, make_source):
    source = make_source()
    client = FakeMailClient([mail("m1", JUAN)])
    client.fail_list = AuthError("Gmail not connected")

    with pytest.raises(AuthError):
        run_email_import_for_agency("agency-1", session_factory=SessionLocal, mail_client=client)

    db_session.expire_all()
    assert source.total_errors == 0
    assert db_session.query(EmailImportLog).count() == 0


def test_cycle_covers_active_sources_of_every_agency(db_session, make_source):
    make_source(agency_id="agency-1")
    make_source(agency_id="agency-2")
    make_source(agency_id="agency-3", is_active=False)
    client = FakeMailClient([mail("m1", JUAN)])

    totals = run_email_import_for_all_agencies(session_factory=SessionLocal, mail_client=client)

    assert totals.imported == 2
    assert len(client.list_calls) == 2
    agencies = {lead.agency_id for lead in db_session.query(Lead).all()}
    assert agencies == {"agency-1", "agency-2"}


def test_agency_run_without_sources(db_session):
    client = FakeMailClient()

    totals = run_email_import_for_agency("nobody", session_factory=SessionLocal, mail_client=client)

    assert totals.to_dict() == {"imported": 0, "duplicates": 0, "errors": 0, "skipped": 0}
    assert client.list_calls == []


def test_create_lead_applies_source_defaults(db_session, make_source):
    source = make_source(default_registration_type="buyer", default_source="portal")
    parsed = ParsedLead(first_name="Ana", last_name="", source="")

    lead_id = create_lead_from_email(db_session, "agency-1", source, parsed)
    db_session.commit()

    lead = db_session.get(Lead, lead_id)
    assert lead.registration_type == "buyer"
    assert lead.source == "portal"
    assert lead.notes is None
    assert lead.phone_last4 is None


def test_cursor_counters_only_increase(db_session, make_source):
    source = make_source()

    advance_cursor(db_session, source.id, "m9", imported=2, duplicates=1, errors=0)
    advance_cursor(db_session, source.id, None, imported=1)
    db_session.commit()

    assert source.last_sync_message_id == "m9"
    assert (source.total_imported, source.total_duplicates) == (3, 1)
    with pytest.raises(ValueError):
        advance_cursor(db_session, source.id, None, imported=-1)


def test_list_import_logs_filters(db_session, make_source):
    source = make_source()
    other = make_source(agency_id="agency-2")
    record_import(db_session, agency_id="agency-1", source_id=source.id, gmail_message_id="a", status="success")
    record_import(db_session, agency_id="agency-1", source_id=source.id, gmail_message_id="b", status="parse_error")
    record_import(db_session, agency_id="agency-2", source_id=other.id, gmail_message_id="c", status="duplicate")
    db_session.commit()

    assert {e.gmail_message_id for e in list_import_logs(db_session, agency_id="agency-1")} == {"a", "b"}
    assert [e.gmail_message_id for e in list_import_logs(db_session, status="duplicate")] == ["c"]
    assert len(list_import_logs(db_session, limit=1)) == 1
    with pytest.raises(ValueError):
        record_import(db_session, agency_id="agency-1", source_id=source.id, gmail_message_id="d", status="ok")


def test_check_gmail_connection():
    assert check_gmail_connection(FakeMailClient()) == {
        "connected": True,
        "email_address": "leads@agency.example",
        "error": None,
    }

    failing = FakeMailClient(profile_address=AuthError("Gmail not connected"))
    result = check_gmail_connection(failing)
    assert result["connected"] is False
    assert result["error"] == "Gmail not connected"


def test_source_repr_mentions_provider(make_source):
    source = make_source()

    assert "tokko" in repr(source)
    assert isinstance(source, EmailSource)

import pytest
from sqlalchemy.exc import IntegrityError

from app.errors import AlreadySignedError
from app.models.lease_signature import LeaseSignature, SignatureMethod, SignerType
from app.services.signatures import SignatureStore, SignerInfo, _is_signer_conflict
from tests.conftest import landlord_signer, tenant_signer


@pytest.fixture
def agreement(manager, lease):
    return manager.create_agreement(lease.id)


def test_record_signature_stores_signer_details(db, agreement):
    store = SignatureStore(db)
    sig = store.record_signature(agreement.id, SignerType.TENANT, tenant_signer(user_agent="Mozilla/5.0"))

    assert sig.id is not None
    assert sig.signer_type == SignerType.TENANT
    assert sig.signer_email == "jane@example.com"
    assert sig.ip_address == "203.0.113.7"
    assert sig.user_agent == "Mozilla/5.0"
    assert sig.signed_at is not None


def test_typed_signature_defaults_data_to_signer_name(db, agreement):
    sig = SignatureStore(db).record_signature(agreement.id, SignerType.LANDLORD, landlord_signer())
    assert sig.signature_method == SignatureMethod.TYPED
    assert sig.signature_data == "Pat Manager"


def test_long_user_agent_is_truncated(db, agreement):
    sig = SignatureStore(db).record_signature(agreement.id, SignerType.TENANT, tenant_signer(user_agent="x" * 1000))
    assert len(sig.user_agent) == 400


def test_second_signature_for_same_role_is_rejected(db, agreement):
    store = SignatureStore(db)
    store.record_signature(agreement.id, SignerType.TENANT, tenant_signer())

    with pytest.raises(AlreadySignedError):
        store.record_signature(agreement.id, SignerType.TENANT, SignerInfo(name="Someone Else", email="else@example.com"))

    assert db.query(LeaseSignature).filter_by(agreement_id=agreement.id).count() == 1


def test_same_role_from_two_sessions_keeps_one_row(session_factory, agreement):
    first, second = session_factory(), session_factory()
    try:
        SignatureStore(first).record_signature(agreement.id, SignerType.TENANT, tenant_signer())
        with pytest.raises(AlreadySignedError):
            SignatureStore(second).record_signature(agreement.id, SignerType.TENANT, tenant_signer())
        assert SignatureStore(second).signer_roles(agreement.id) == {SignerType.TENANT}
    finally:
        first.close()
        second.close()


def test_signer_roles_reflects_other_sessions(session_factory, agreement):
    reader, writer = session_factory(), session_factory()
    try:
        store = SignatureStore(reader)
        assert store.signer_roles(agreement.id) == set()
        SignatureStore(writer).record_signature(agreement.id, SignerType.LANDLORD, landlord_signer())
        assert store.signer_roles(agreement.id) == {SignerType.LANDLORD}
    finally:
        reader.close()
        writer.close()


def test_list_signatures_in_signing_order(db, agreement):
    store = SignatureStore(db)
    store.record_signature(agreement.id, SignerType.TENANT, tenant_signer())
    store.record_signature(agreement.id, SignerType.LANDLORD, landlord_signer())

    assert [s.signer_type for s in store.list_signatures(agreement.id)] == [SignerType.TENANT, SignerType.LANDLORD]


@pytest.mark.parametrize(
    "message, expected",
    [
        ("UNIQUE constraint failed: lease_signatures.agreement_id, lease_signatures.signer_type", True),
        ('duplicate key value violates unique constraint "uq_lease_signatures_agreement_signer"', True),
        ("UNIQUE constraint failed: lease_signatures.id", False),
        ('duplicate key value violates unique constraint "lease_signatures_pkey"', False),
        ("NOT NULL constraint failed: lease_signatures.signer_name", False),
    ],
)
def test_only_the_signer_constraint_counts_as_already_signed(message, expected):
    assert _is_signer_conflict(IntegrityError("INSERT INTO lease_signatures", {}, Exception(message))) is expected

# tests/test_reconciliation.py
import pytest
import requests

from xlata_app.models import UserSubscription, MercadoPagoPayment
from xlata_app.services.errors import PaymentNotFound, ProviderUnavailable
from xlata_app.services.reconciliation import reconcile_payment, process_payment_event


def _ref(user, plan="monthly"):
    return f"user_{user.id}_plan_{plan}"


def test_unknown_payment(app, db_session):
    with pytest.raises(PaymentNotFound):
        reconcile_payment("nope")
    with pytest.raises(PaymentNotFound):
        reconcile_payment("")


def test_approved_without_subscription_is_repaired(app, db_session, user_normal, make_payment, mp):
    """Aprovação gravada antes, mas a ativação falhou: a consulta cria a linha que faltava."""
    make_payment("555", _ref(user_normal), status="approved")
    result = reconcile_payment("555")

    assert result.to_dict() == {"id": "555", "status": "approved", "status_detail": None}
    assert result.activation.outcome == "activated"
    assert UserSubscription.query.filter_by(payment_reference="555").count() == 1
    # short-circuit: não consulta o provedor
    assert mp.calls == []


def test_approved_twice_is_noop(app, db_session, user_normal, make_payment):
    make_payment("556", _ref(user_normal), status="approved")
    reconcile_payment("556")
    again = reconcile_payment("556")
    assert again.activation.outcome == "skipped"
    assert UserSubscription.query.filter_by(payment_reference="556").count() == 1


def test_pending_becomes_approved(app, db_session, user_normal, make_payment, mp):
    make_payment("557", _ref(user_normal), status="pending")
    mp.set_status("557", "approved", external_reference=_ref(user_normal), detail="accredited")

    result = reconcile_payment("557")
    assert result.payment.status == "approved"
    assert result.payment.status_detail == "accredited"
    assert result.activation.outcome == "activated"
    assert mp.calls[0][0] == "GET"
    assert mp.calls[0][1].endswith("/v1/payments/557")
    assert mp.calls[0][3] == app.config["MERCADOPAGO_TIMEOUT"]


def test_pending_still_pending(app, db_session, user_normal, make_payment, mp):
    make_payment("558", _ref(user_normal), status="pending")
    mp.set_status("558", "pending", detail="pending_waiting_transfer")
    result = reconcile_payment("558")
    assert result.payment.status == "pending"
    assert result.activation is None
    assert UserSubscription.query.count() == 0


def test_pending_rejected_updates_record(app, db_session, user_normal, make_payment, mp):
    make_payment("559", _ref(user_normal), status="pending")
    mp.set_status("559", "rejected", detail="cc_rejected_other_reason")
    result = reconcile_payment("559")
    assert result.payment.status == "rejected"
    assert MercadoPagoPayment.query.filter_by(payment_id="559").first().status == "rejected"
    assert UserSubscription.query.count() == 0


def test_timeout_keeps_last_known_status(app, db_session, user_normal, make_payment, mp):
    make_payment("560", _ref(user_normal), status="pending")
    mp.fail_with = requests.Timeout("read timed out")
    result = reconcile_payment("560")
    assert result.payment.status == "pending"
    assert result.provider_error == "provider_unavailable"
    assert MercadoPagoPayment.query.filter_by(payment_id="560").first().status == "pending"


def test_terminal_non_approved_is_not_requeried(app, db_session, user_normal, make_payment, mp):
    make_payment("561", _ref(user_normal), status="cancelled")
    result = reconcile_payment("561")
    assert result.payment.status == "cancelled"
    assert mp.calls == []


def test_push_event_activates(app, db_session, user_normal, make_payment, mp):
    make_payment("600", _ref(user_normal), status="pending")
    mp.set_status("600", "approved", external_reference=_ref(user_normal))
    result = process_payment_event("600")
    assert result.payment.status == "approved"
    assert result.activation.outcome == "activated"


def test_push_event_inserts_missing_record_once(app, db_session, user_normal, mp):
    mp.set_status("601", "approved", external_reference=_ref(user_normal), email=user_normal.email)
    process_payment_event("601")
    process_payment_event("601")
    assert MercadoPagoPayment.query.filter_by(payment_id="601").count() == 1
    assert UserSubscription.query.filter_by(payment_reference="601").count() == 1


def test_push_and_pull_converge(app, db_session, user_normal, make_payment, mp):
    make_payment("602", _ref(user_normal), status="pending")
    mp.set_status("602", "approved", external_reference=_ref(user_normal))
    reconcile_payment("602")
    result = process_payment_event("602")
    assert result.activation.outcome == "skipped"
    assert UserSubscription.query.filter_by(user_id=user_normal.id).count() == 1


def test_push_event_provider_timeout_raises(app, db_session, mp):
    mp.fail_with = requests.ConnectionError("boom")
    with pytest.raises(ProviderUnavailable):
        process_payment_event("603")

from sqlalchemy import func, select

from donorhub.extensions import db
from donorhub.models import Donation, Donor, MetricsRollup, Referral, WebhookLog
from donorhub.services import stripe_ingest
from tests.conftest import stripe_signature


def _pi_succeeded(pi_id="pi_1", amount=2500, email="Ada@Example.org", **metadata):
    md = {"first_name": "Ada", "last_name": "Lovelace", "frequency": "one_time"}
    md.update(metadata)
    return {
        "id": f"evt_{pi_id}",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": pi_id,
                "object": "payment_intent",
                "amount": amount,
                "currency": "usd",
                "receipt_email": email,
                "created": 1767225600,
                "payment_method_types": ["card"],
                "metadata": md,
            }
        },
    }


def _count(model):
    return db.session.scalar(select(func.count(model.id)))


def _donation(external_id="pi_1"):
    return db.session.scalars(
        select(Donation).where(Donation.external_source == "stripe", Donation.external_id == external_id)
    ).one()


def test_payment_succeeded_creates_donor_and_donation(post_stripe):
    resp = post_stripe(_pi_succeeded())

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "processed": True}

    donation = _donation()
    assert donation.amount_cents == 2500
    assert donation.status == "succeeded"
    assert donation.method == "card"
    assert donation.donor.email == "ada@example.org"
    assert donation.donor.first_name == "Ada"


def test_redelivery_does_not_duplicate(post_stripe):
    event = _pi_succeeded()
    assert post_stripe(event).status_code == 200
    assert post_stripe(event).status_code == 200

    assert _count(Donation) == 1
    assert _count(Donor) == 1
    assert _count(WebhookLog) == 2


def test_charge_and_intent_events_share_one_row(post_stripe):
    post_stripe(_pi_succeeded())
    charge = {
        "id": "evt_ch_1",
        "type": "charge.succeeded",
        "data": {
            "object": {
                "id": "ch_1",
                "object": "charge",
                "payment_intent": "pi_1",
                "amount": 2500,
                "currency": "usd",
                "billing_details": {"email": "ada@example.org", "name": "Ada Lovelace"},
                "payment_method_details": {"type": "card"},
            }
        },
    }

    assert post_stripe(charge).status_code == 200
    assert _count(Donation) == 1


def test_successful_payment_refreshes_rollup(post_stripe, client):
    post_stripe(_pi_succeeded(amount=4000))

    rollup = db.session.get(MetricsRollup, 1)
    assert rollup is not None
    assert rollup.total_raised_cents == 4000
    assert rollup.donors_count == 1

    data = client.get("/api/metrics/summary").get_json()["data"]
    assert data["total_raised_cents"] == 4000
    assert data["total_raised_usd"] == "40.00"


def test_dispute_marks_donation_disputed(post_stripe):
    post_stripe(_pi_succeeded())
    dispute = {
        "id": "evt_dp_1",
        "type": "charge.dispute.created",
        "data": {"object": {"id": "dp_1", "charge": "ch_1", "payment_intent": "pi_1", "reason": "fraudulent"}},
    }

    assert post_stripe(dispute).status_code == 200

    donation = _donation()
    assert donation.status == "disputed"
    assert donation.status_reason == "fraudulent"
    assert db.session.get(MetricsRollup, 1).total_raised_cents == 0


def test_failure_after_success_is_rejected(post_stripe):
    post_stripe(_pi_succeeded())
    failed = {
        "id": "evt_fail_1",
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_1", "last_payment_error": {"message": "card declined"}}},
    }

    resp = post_stripe(failed)

    assert resp.status_code == 200
    assert _donation().status == "succeeded"


def test_redelivered_success_does_not_undo_dispute(post_stripe):
    post_stripe(_pi_succeeded())
    post_stripe(
        {
            "id": "evt_dp_1",
            "type": "charge.dispute.created",
            "data": {"object": {"id": "dp_1", "payment_intent": "pi_1", "reason": "general"}},
        }
    )

    post_stripe(_pi_succeeded())

    assert _donation().status == "disputed"


def test_unhandled_event_type_is_acknowledged(post_stripe):
    resp = post_stripe({"id": "evt_x", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "processed": False}
    log = db.session.scalars(select(WebhookLog)).one()
    assert log.event_type == "customer.created"
    assert log.verified is True
    assert log.processed is False


def test_invalid_signature_is_rejected_and_logged(post_stripe):
    resp = post_stripe(_pi_succeeded(), signature="t=1,v1=deadbeef")

    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "error": "Invalid signature"}
    assert _count(Donation) == 0

    log = db.session.scalars(select(WebhookLog)).one()
    assert log.verified is False
    assert log.error == "Invalid signature"


def test_missing_signature_is_rejected(client):
    resp = client.post("/api/webhooks/stripe", data=b"{}", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


def test_missing_secret_accepts_unverified_when_not_required(app, post_stripe):
    app.config["STRIPE_WEBHOOK_SECRET"] = ""
    app.config["REQUIRE_WEBHOOK_SIGNATURES"] = False

    resp = post_stripe(_pi_succeeded(), signature="")

    assert resp.status_code == 200
    assert db.session.scalars(select(WebhookLog)).one().verified is False


def test_missing_secret_rejected_when_required(app, post_stripe):
    app.config["STRIPE_WEBHOOK_SECRET"] = ""

    resp = post_stripe(_pi_succeeded(), signature="")

    assert resp.status_code == 400
    assert _count(Donation) == 0


def test_malformed_json_is_400(client):
    body = b"not json"
    resp = client.post("/api/webhooks/stripe", data=body, headers={"Stripe-Signature": stripe_signature(body)})

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_payment_without_email_is_skipped(post_stripe):
    event = _pi_succeeded(email=None)

    resp = post_stripe(event)

    assert resp.status_code == 200
    assert _count(Donation) == 0


def test_subscription_events_toggle_monthly_flag(post_stripe):
    post_stripe(_pi_succeeded(frequency="monthly"))
    assert db.session.scalars(select(Donor)).one().is_monthly_donor is True

    def sub(status):
        return {
            "id": f"evt_sub_{status}",
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_1", "status": status, "metadata": {"email": "ada@example.org"}}},
        }

    post_stripe(sub("canceled"))
    assert db.session.scalars(select(Donor)).one().is_monthly_donor is False

    post_stripe(sub("active"))
    assert db.session.scalars(select(Donor)).one().is_monthly_donor is True


def test_referral_code_in_metadata_is_attributed(post_stripe, client):
    post_stripe(_pi_succeeded(referral_code="AMB-7"))
    post_stripe(_pi_succeeded(referral_code="AMB-7"))

    board = client.get("/api/metrics/leaderboard").get_json()
    assert board["count"] == 1
    assert board["data"][0]["referral_code"] == "AMB-7"
    assert board["data"][0]["converted_referrals"] == 1
    assert board["data"][0]["total_referred_cents"] == 2500


def test_repeat_donor_with_code_is_not_credited(post_stripe):
    post_stripe(_pi_succeeded("pi_1"))

    post_stripe(_pi_succeeded("pi_2", referral_code="AMB-1"))

    assert _count(Donation) == 2
    assert _count(Referral) == 0


def test_donor_is_credited_to_first_code_only(post_stripe):
    post_stripe(_pi_succeeded("pi_1", referral_code="AMB-1"))
    post_stripe(_pi_succeeded("pi_2", referral_code="AMB-2"))

    referral = db.session.scalars(select(Referral)).one()
    assert referral.referrer_code == "AMB-1"
    assert referral.first_donation_id == _donation("pi_1").id


def test_unhandled_event_without_data_object_is_acknowledged(post_stripe):
    resp = post_stripe({"id": "evt_acct", "type": "account.updated"})

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "processed": False}


def test_handled_event_without_data_object_is_400(post_stripe):
    resp = post_stripe({"id": "evt_bad", "type": "payment_intent.succeeded"})

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False
    assert _count(Donation) == 0


def test_store_failure_is_500_and_left_for_retry(post_stripe, monkeypatch):
    def _boom(**kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(stripe_ingest, "upsert_donation", _boom)

    resp = post_stripe(_pi_succeeded())

    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "db down"}
    assert _count(Donation) == 0
    log = db.session.scalars(select(WebhookLog)).one()
    assert log.verified is True
    assert log.processed is False
    assert log.error == "db down"


def test_charge_failed_marks_pending_donation_failed(post_stripe, donate):
    donate("ada@example.org", 2_500, external_id="pi_9", status="pending")
    failed = {
        "id": "evt_ch_fail",
        "type": "charge.failed",
        "data": {
            "object": {"id": "ch_9", "payment_intent": "pi_9", "failure_message": "Your card was declined."}
        },
    }

    resp = post_stripe(failed)

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "processed": True}
    donation = _donation("pi_9")
    assert donation.status == "failed"
    assert donation.status_reason == "Your card was declined."


def test_invoice_payment_failed_marks_donation_failed(post_stripe, donate):
    donate("ada@example.org", 1_000, external_id="pi_inv", status="pending", frequency="monthly")
    invoice = {
        "id": "evt_inv_fail",
        "type": "invoice.payment_failed",
        "data": {"object": {"id": "in_1", "payment_intent": "pi_inv", "customer": "cus_1"}},
    }

    assert post_stripe(invoice).status_code == 200

    donation = _donation("pi_inv")
    assert donation.status == "failed"
    assert donation.status_reason == "invoice payment failed"


def test_invoice_failure_without_payment_intent_is_processed(post_stripe):
    resp = post_stripe(
        {"id": "evt_inv_2", "type": "invoice.payment_failed", "data": {"object": {"id": "in_2"}}}
    )

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "processed": True}
    assert db.session.scalars(select(WebhookLog)).one().processed is True

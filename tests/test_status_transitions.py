import pytest

from donorhub.extensions import db
from donorhub.models import DonationStatus
from donorhub.models.donation import can_transition, states_that_may_become
from donorhub.services.donorbox_ingest import donorbox_status
from donorhub.services.store import TransitionResult, transition_donation, upsert_donation, upsert_donor

P, S, F, D = (
    DonationStatus.PENDING,
    DonationStatus.SUCCEEDED,
    DonationStatus.FAILED,
    DonationStatus.DISPUTED,
)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (P, S, True),
        (P, F, True),
        (F, S, True),
        (F, P, True),
        (S, D, True),
        (S, S, True),
        (S, F, False),
        (S, P, False),
        (D, S, False),
        (D, F, False),
        (P, D, False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_states_that_may_become_disputed():
    assert states_that_may_become(D) == {"succeeded", "disputed"}


@pytest.mark.parametrize(
    "raw,expected",
    [("paid", S), ("Succeeded", S), ("failed", F), ("refunded", D), ("disputed", D), ("", P), ("weird", P)],
)
def test_donorbox_status_mapping(raw, expected):
    assert donorbox_status(raw) is expected


def _upsert(donor_id, status, amount=2500):
    return upsert_donation(
        donor_id=donor_id,
        external_source="donorbox",
        external_id="db_1",
        amount_cents=amount,
        currency="usd",
        status=status,
    )


def test_upsert_applies_legal_moves_and_rejects_regressions(app):
    donor = upsert_donor("ada@example.org")

    assert _upsert(donor.id, P).applied is True
    assert _upsert(donor.id, F).applied is True
    assert _upsert(donor.id, S, amount=3000).applied is True

    regress = _upsert(donor.id, P, amount=1)
    assert regress.applied is False
    assert regress.donation.status == "succeeded"
    assert regress.donation.amount_cents == 3000
    db.session.commit()


def test_transition_on_unknown_donation_is_missing(app):
    assert transition_donation("stripe", "pi_unknown", F) is TransitionResult.MISSING


def test_transition_rejected_from_terminal_state(app):
    donor = upsert_donor("ada@example.org")
    _upsert(donor.id, S)
    assert transition_donation("donorbox", "db_1", D, reason="chargeback") is TransitionResult.APPLIED
    assert transition_donation("donorbox", "db_1", S) is TransitionResult.REJECTED
    db.session.commit()

"""
Authorization state machine tests.

Covers the permit and transfer-with-permit entry points end to end with real
signatures, plus gate ordering and atomicity with a scripted recoverer.

Usage:
    pytest tests/test_token/test_permit_token.py -v
"""

import dataclasses
import threading

import pytest

from test_mocks import (
    MOCK_DOMAIN,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_SPENDER_ADDRESS,
    MOCK_SPENDER_PRIVATE_KEY,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_RELAYER_ADDRESS,
    MOCK_CHAIN_ID_MAINNET,
    MOCK_OTHER_CONTRACT,
    MOCK_CURRENT_TIME,
    MOCK_DEADLINE_FUTURE,
    MOCK_DEADLINE_PAST,
    MOCK_R,
    MOCK_S,
    FixedClock,
    ScriptedRecoverer,
    create_signed_permit,
    create_signed_transfer,
    create_token,
)

from typed_permit.engine.events import (
    ApprovalEvent,
    PermitUsedEvent,
    TransferEvent,
    TransferWithPermitEvent,
)
from typed_permit.engine.exceptions import (
    InsufficientFundsError,
    MalformedArgumentsError,
    PaymentVerificationError,
    PermitExpiredError,
    SignatureVerificationError,
)
from typed_permit.evm.hashing import ZERO_ADDRESS, domain_separator, permit_hash, typed_data_digest
from typed_permit.evm.standards import PERMIT_TYPEHASH, TRANSFER_TYPEHASH
from typed_permit.schemas.bases import VerificationStatus
from typed_permit.token.permit_token import PermitToken


def _apply_permit(token, auth):
    sig = auth.signature
    token.permit(auth.owner, auth.spender, auth.value, auth.deadline, sig.v, sig.r, sig.s)


def _apply_transfer(token, auth, executor=None):
    sig = auth.signature
    return token.transfer_with_permit(
        auth.sender, auth.recipient, auth.value, auth.deadline, sig.v, sig.r, sig.s, executor=executor,
    )


class TestViews:
    """Read-only EIP-712 views."""

    def test_domain_separator_cached(self):
        token = create_token()
        assert token.get_domain_separator() == domain_separator(MOCK_DOMAIN)
        assert token.get_domain_separator() is token.get_domain_separator()

    def test_type_hashes(self):
        token = create_token()
        assert token.get_permit_type_hash() == PERMIT_TYPEHASH
        assert token.get_transfer_type_hash() == TRANSFER_TYPEHASH

    def test_digest(self):
        token = create_token()
        h = token.get_permit_hash(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1000, 0, MOCK_DEADLINE_FUTURE)
        assert h == permit_hash(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1000, 0, MOCK_DEADLINE_FUTURE)
        assert token.get_digest(h) == typed_data_digest(domain_separator(MOCK_DOMAIN), h)

    def test_transfer_hash_differs_from_permit_hash(self):
        token = create_token()
        args = (MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1, 0, MOCK_DEADLINE_FUTURE)
        assert token.get_transfer_hash(*args) != token.get_permit_hash(*args)

    def test_nonce_starts_at_zero(self):
        token = create_token()
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 0
        assert token.nonces(MOCK_SPENDER_ADDRESS.lower()) == 0

    def test_domain_contract_is_checksummed(self):
        token = PermitToken(dataclasses.replace(MOCK_DOMAIN, verifyingContract=MOCK_DOMAIN.verifyingContract.lower()))
        assert token.domain == MOCK_DOMAIN
        assert token.name == MOCK_DOMAIN.name


class TestPermit:
    """permit() with real signatures."""

    def test_permit_scenario_and_replay(self):
        token = create_token()
        auth = create_signed_permit(token, value=1000)

        _apply_permit(token, auth)
        assert token.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 1000
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 1

        with pytest.raises(SignatureVerificationError):
            _apply_permit(token, auth)
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 1

    def test_events_emitted(self):
        token = create_token()
        auth = create_signed_permit(token, value=1000)
        _apply_permit(token, auth)

        history = token.event_bus.history
        assert history == [
            ApprovalEvent(owner=MOCK_OWNER_ADDRESS, spender=MOCK_SPENDER_ADDRESS, value=1000),
            PermitUsedEvent(
                owner=MOCK_OWNER_ADDRESS,
                spender=MOCK_SPENDER_ADDRESS,
                value=1000,
                nonce=0,
                deadline=MOCK_DEADLINE_FUTURE,
            ),
        ]

    def test_nonce_monotonic_over_sequence(self):
        token = create_token()
        for expected_nonce, value in enumerate([10, 20, 30]):
            auth = create_signed_permit(token, value=value)
            assert auth.nonce == expected_nonce
            _apply_permit(token, auth)
            assert token.get_nonce(MOCK_OWNER_ADDRESS) == expected_nonce + 1
        assert token.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 30

    def test_expired(self):
        token = create_token()
        auth = create_signed_permit(token, deadline=MOCK_DEADLINE_PAST)
        with pytest.raises(PermitExpiredError) as exc_info:
            _apply_permit(token, auth)
        assert exc_info.value.deadline == MOCK_DEADLINE_PAST
        assert exc_info.value.current_time == MOCK_CURRENT_TIME
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 0
        assert token.event_bus.history == []

    def test_deadline_equal_to_now_is_accepted(self):
        token = create_token()
        auth = create_signed_permit(token, deadline=MOCK_CURRENT_TIME)
        _apply_permit(token, auth)
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 1

    def test_expires_as_clock_advances(self):
        clock = FixedClock()
        token = create_token(clock=clock)
        auth = create_signed_permit(token, deadline=MOCK_CURRENT_TIME + 10)
        clock.tick(11)
        with pytest.raises(PermitExpiredError):
            _apply_permit(token, auth)

    def test_zero_value_permit(self):
        token = create_token()
        token.approve(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 50)
        _apply_permit(token, create_signed_permit(token, value=0))
        assert token.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 0
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 1

    def test_signed_by_someone_else(self):
        token = create_token()
        auth = create_signed_permit(token, private_key=MOCK_SPENDER_PRIVATE_KEY)
        sig = auth.signature
        with pytest.raises(SignatureVerificationError) as exc_info:
            token.permit(MOCK_OWNER_ADDRESS, auth.spender, auth.value, auth.deadline, sig.v, sig.r, sig.s)
        assert exc_info.value.signer == MOCK_OWNER_ADDRESS

    def test_stale_or_future_nonce_rejected(self):
        token = create_token()
        with pytest.raises(SignatureVerificationError):
            _apply_permit(token, create_signed_permit(token, nonce=1))

    @pytest.mark.parametrize(
        "domain",
        [
            dataclasses.replace(MOCK_DOMAIN, chainId=MOCK_CHAIN_ID_MAINNET),
            dataclasses.replace(MOCK_DOMAIN, verifyingContract=MOCK_OTHER_CONTRACT),
        ],
    )
    def test_signature_from_other_domain_rejected(self, domain):
        token = create_token()
        with pytest.raises(SignatureVerificationError):
            _apply_permit(token, create_signed_permit(token, domain=domain))

    def test_tampered_value_rejected(self):
        token = create_token()
        auth = create_signed_permit(token, value=1000)
        sig = auth.signature
        with pytest.raises(SignatureVerificationError):
            token.permit(auth.owner, auth.spender, 1001, auth.deadline, sig.v, sig.r, sig.s)

    def test_malformed_signature_components(self):
        token = create_token()
        auth = create_signed_permit(token)
        with pytest.raises(MalformedArgumentsError):
            token.permit(auth.owner, auth.spender, auth.value, auth.deadline, 29, auth.signature.r, auth.signature.s)
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 0

    def test_submit_permit(self):
        token = create_token()
        token.submit_permit(create_signed_permit(token, value=77))
        assert token.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 77

    def test_submit_without_signature(self):
        token = create_token()
        auth = create_signed_permit(token).model_copy(update={"signature": None})
        with pytest.raises(MalformedArgumentsError):
            token.submit_permit(auth)

    def test_concurrent_submissions_apply_once(self):
        token = create_token()
        auth = create_signed_permit(token, value=1000)
        outcomes = []

        def submit():
            try:
                _apply_permit(token, auth)
                outcomes.append("ok")
            except SignatureVerificationError:
                outcomes.append("rejected")

        threads = [threading.Thread(target=submit) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("rejected") == 7
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 1


class TestTransferWithPermit:
    """transfer_with_permit() with real signatures."""

    def test_insufficient_then_exact_balance(self):
        token = create_token(owner_balance=500)

        with pytest.raises(InsufficientFundsError) as exc_info:
            _apply_transfer(token, create_signed_transfer(token, value=600))
        assert exc_info.value.required == 600
        assert exc_info.value.available == 500
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 0

        assert _apply_transfer(token, create_signed_transfer(token, value=500))
        assert token.balance_of(MOCK_OWNER_ADDRESS) == 0
        assert token.balance_of(MOCK_RECIPIENT_ADDRESS) == 500
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 1

    def test_events_record_executor(self):
        token = create_token(owner_balance=500, executor=MOCK_RELAYER_ADDRESS)
        _apply_transfer(token, create_signed_transfer(token, value=200))

        assert token.event_bus.events_of(TransferEvent)[-1] == TransferEvent(
            sender=MOCK_OWNER_ADDRESS, recipient=MOCK_RECIPIENT_ADDRESS, value=200,
        )
        used = token.event_bus.events_of(TransferWithPermitEvent)
        assert len(used) == 1
        assert used[0].nonce == 0
        assert used[0].executor.lower() == MOCK_RELAYER_ADDRESS

    def test_explicit_executor_overrides_default(self):
        token = create_token(owner_balance=500, executor=MOCK_RELAYER_ADDRESS)
        _apply_transfer(token, create_signed_transfer(token, value=1), executor=MOCK_SPENDER_ADDRESS)
        assert token.event_bus.events_of(TransferWithPermitEvent)[0].executor == MOCK_SPENDER_ADDRESS

    def test_replay_rejected(self):
        token = create_token(owner_balance=500)
        auth = create_signed_transfer(token, value=100)
        _apply_transfer(token, auth)
        with pytest.raises(SignatureVerificationError):
            _apply_transfer(token, auth)
        assert token.balance_of(MOCK_RECIPIENT_ADDRESS) == 100

    def test_permit_signature_not_accepted_as_transfer(self):
        token = create_token(owner_balance=500)
        permit = create_signed_permit(token, spender=MOCK_RECIPIENT_ADDRESS, value=100)
        sig = permit.signature
        with pytest.raises(SignatureVerificationError):
            token.transfer_with_permit(
                MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 100, permit.deadline, sig.v, sig.r, sig.s,
            )

    def test_nonce_shared_between_entry_points(self):
        token = create_token(owner_balance=500)
        _apply_permit(token, create_signed_permit(token))
        auth = create_signed_transfer(token, value=10)
        assert auth.nonce == 1
        _apply_transfer(token, auth)
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 2

    def test_zero_recipient_rejected(self):
        token = create_token(owner_balance=500, recoverer=ScriptedRecoverer(MOCK_OWNER_ADDRESS))
        with pytest.raises(MalformedArgumentsError):
            token.transfer_with_permit(MOCK_OWNER_ADDRESS, ZERO_ADDRESS, 1, MOCK_DEADLINE_FUTURE, 27, MOCK_R, MOCK_S)

    def test_submit_transfer_and_all_errors_share_base(self):
        token = create_token(owner_balance=10)
        assert token.submit_transfer(create_signed_transfer(token, value=10))
        with pytest.raises(PaymentVerificationError):
            token.submit_transfer(create_signed_transfer(token, value=10))


class TestGateOrdering:
    """Gate order and atomicity, driven by a scripted recoverer."""

    def test_deadline_checked_before_recovery(self):
        recoverer = ScriptedRecoverer(MOCK_OWNER_ADDRESS)
        token = create_token(recoverer=recoverer)
        with pytest.raises(PermitExpiredError):
            token.permit(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1, MOCK_DEADLINE_PAST, 27, MOCK_R, MOCK_S)
        assert recoverer.calls == []

    def test_balance_checked_before_recovery(self):
        recoverer = ScriptedRecoverer(None)
        token = create_token(recoverer=recoverer, owner_balance=5)
        with pytest.raises(InsufficientFundsError):
            token.transfer_with_permit(
                MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 6, MOCK_DEADLINE_FUTURE, 27, MOCK_R, MOCK_S,
            )
        assert recoverer.calls == []

    def test_recovery_uses_current_nonce_digest(self):
        recoverer = ScriptedRecoverer(MOCK_OWNER_ADDRESS)
        token = create_token(recoverer=recoverer)
        token.permit(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1, MOCK_DEADLINE_FUTURE, 27, MOCK_R, MOCK_S)
        token.permit(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1, MOCK_DEADLINE_FUTURE, 27, MOCK_R, MOCK_S)

        first, second = recoverer.calls[0][0], recoverer.calls[1][0]
        assert first == token.get_digest(
            token.get_permit_hash(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1, 0, MOCK_DEADLINE_FUTURE))
        assert second == token.get_digest(
            token.get_permit_hash(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 1, 1, MOCK_DEADLINE_FUTURE))

    def test_recovered_zero_address_rejected(self):
        token = create_token(recoverer=ScriptedRecoverer(ZERO_ADDRESS))
        with pytest.raises(SignatureVerificationError):
            token.permit(ZERO_ADDRESS, MOCK_SPENDER_ADDRESS, 1, MOCK_DEADLINE_FUTURE, 27, MOCK_R, MOCK_S)

    def test_failed_recovery_leaves_state_untouched(self):
        token = create_token(recoverer=ScriptedRecoverer(None), owner_balance=100)
        history_before = token.event_bus.history
        with pytest.raises(SignatureVerificationError):
            token.transfer_with_permit(
                MOCK_OWNER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 50, MOCK_DEADLINE_FUTURE, 27, MOCK_R, MOCK_S,
            )
        assert token.balance_of(MOCK_OWNER_ADDRESS) == 100
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 0
        assert token.event_bus.history == history_before

    def test_recovered_address_compared_case_insensitively(self):
        token = create_token(recoverer=ScriptedRecoverer(MOCK_OWNER_ADDRESS.lower()))
        token.permit(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS, 3, MOCK_DEADLINE_FUTURE, 0, MOCK_R, MOCK_S)
        assert token.allowance(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 3


class TestVerifyAuthorization:
    """Dry-run verification against live state."""

    def test_valid_permit(self):
        token = create_token()
        result = token.verify_authorization(create_signed_permit(token))
        assert result.is_success()
        assert token.get_nonce(MOCK_OWNER_ADDRESS) == 0

    def test_consumed_permit_reports_replay(self):
        token = create_token()
        auth = create_signed_permit(token)
        token.submit_permit(auth)
        assert token.verify_authorization(auth).status == VerificationStatus.REPLAY_ATTACK

    def test_transfer_over_balance(self):
        token = create_token(owner_balance=500)
        result = token.verify_authorization(create_signed_transfer(token, value=600))
        assert result.status == VerificationStatus.INSUFFICIENT_BALANCE

    def test_signed_with_other_key(self):
        token = create_token(owner_balance=500)
        auth = create_signed_transfer(token, private_key=MOCK_OWNER_PRIVATE_KEY)
        forged = auth.model_copy(update={"sender": MOCK_SPENDER_ADDRESS})
        token.mint(MOCK_SPENDER_ADDRESS, 500)
        assert token.verify_authorization(forged).status == VerificationStatus.INVALID_SIGNATURE

    def test_malformed_owner_reported_not_raised(self):
        token = create_token()
        auth = create_signed_permit(token).model_copy(update={"owner": "0xnothex"})
        result = token.verify_authorization(auth)
        assert result.status == VerificationStatus.MALFORMED_ARGUMENTS
        assert not result.is_valid

    def test_malformed_sender_reported_not_raised(self):
        token = create_token(owner_balance=500)
        auth = create_signed_transfer(token).model_copy(update={"sender": "0x1234"})
        assert token.verify_authorization(auth).status == VerificationStatus.MALFORMED_ARGUMENTS

    def test_unsigned_authorization_reported_not_raised(self):
        token = create_token()
        auth = create_signed_permit(token).model_copy(update={"signature": None})
        assert token.verify_authorization(auth).status == VerificationStatus.MALFORMED_ARGUMENTS

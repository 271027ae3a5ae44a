"""
Tests for Administration Smart Contract

Tests cover:
- Contract creation
- Benefactor requests (one open request per user)
- Blocking and unblocking users
- Promoting and declining requests in stack order
- Administrator-only restrictions
- Box minimum balance funding
- Emitted events
"""

import pytest
from algopy import Account, UInt64, arc4, gtxn
from algopy_testing import AlgopyTestContext, algopy_testing_context

from contracts.administration.contract import (
    Administration,
    Block,
    CreateBenefactorRequest,
    DeclineBenefactor,
    GiveBenefactor,
    REQUEST_APPROVED,
    REQUEST_DECLINED,
    REQUEST_PENDING,
    USER_ACTIVE,
    USER_BENEFACTOR,
    USER_BLOCKED,
    Unblock,
)


NOW = 1_700_000_000

# 2500 + 400 * (39 + 8)
STATUS_BOX_COST = 21_300


def as_sender(context: AlgopyTestContext, sender: Account):
    """Run the next contract call as the given account."""
    return context.txn.create_group(active_txn_overrides={"sender": sender})


def funding(
    context: AlgopyTestContext,
    contract: Administration,
    amount: int = 1_000_000,
) -> gtxn.PaymentTransaction:
    """Build a payment to the application covering new boxes."""
    app = context.ledger.get_app(contract)
    return context.any.txn.payment(receiver=app.address, amount=UInt64(amount))


def request_as(context: AlgopyTestContext, contract: Administration, user: Account, comment: str) -> None:
    with as_sender(context, user):
        contract.request_benefactor_status(arc4.String(comment), funding(context, contract))


class TestAdministration:
    """Test suite for Administration contract."""

    @pytest.fixture
    def context(self) -> AlgopyTestContext:
        """Create a fresh testing context for each test."""
        with algopy_testing_context() as ctx:
            ctx.ledger.patch_global_fields(latest_timestamp=UInt64(NOW))
            yield ctx

    @pytest.fixture
    def contract(self, context: AlgopyTestContext) -> Administration:
        """Create the registry with the default sender as administrator."""
        contract = Administration()
        contract.create()
        return contract

    def block(self, context: AlgopyTestContext, contract: Administration, user: Account) -> None:
        contract.block_user(arc4.Address(user), funding(context, contract))

    def test_create_contract(self, context: AlgopyTestContext, contract: Administration):
        """Test that the creator becomes the administrator."""
        # Assert
        assert contract.admin.value == context.default_sender
        assert contract.get_admin().native == context.default_sender
        assert contract.get_pending_request_count().native == 0

    def test_unknown_user_is_active(self, context: AlgopyTestContext, contract: Administration):
        """Test that users default to active status."""
        # Arrange
        user = context.any.account()

        # Act
        status = contract.status_of(arc4.Address(user))

        # Assert
        assert status.native == USER_ACTIVE

    def test_request_benefactor_status(self, context: AlgopyTestContext, contract: Administration):
        """Test creating a benefactor request."""
        # Arrange
        user = context.any.account()
        comment = "I want to become a benefactor"

        # Act
        request_as(context, contract, user, comment)

        # Assert
        request = contract.latest_request_of(arc4.Address(user))
        assert request.comment.native == comment
        assert request.status.native == REQUEST_PENDING
        assert request.sender.native == user
        assert contract.get_pending_request_count().native == 1

    def test_request_emits_event(self, context: AlgopyTestContext, contract: Administration):
        """Test that a request logs CreateBenefactorRequest."""
        # Arrange
        user = context.any.account()

        # Act
        request_as(context, contract, user, "Trust me")

        # Assert
        event = CreateBenefactorRequest(user=arc4.Address(user), comment=arc4.String("Trust me"))
        assert context.txn.last_active.logs(0) == (
            arc4.arc4_signature("CreateBenefactorRequest(address,string)") + event.bytes
        )

    def test_request_requires_box_funding(self, context: AlgopyTestContext, contract: Administration):
        """Test that a request must pay for its request and stack boxes."""
        # Arrange
        user = context.any.account()
        # request: 2500 + 400 * (40 + 47), stack entry: 2500 + 400 * (14 + 32)
        required = 37_300 + 20_900

        # Act & Assert
        with pytest.raises(AssertionError, match="InsufficientBoxFunding"):
            with as_sender(context, user):
                contract.request_benefactor_status(
                    arc4.String("Please"), funding(context, contract, required - 1)
                )

        with as_sender(context, user):
            contract.request_benefactor_status(
                arc4.String("Please"), funding(context, contract, required)
            )
        assert contract.get_pending_request_count().native == 1

    def test_request_already_pending(self, context: AlgopyTestContext, contract: Administration):
        """Test that a user cannot open a second request while one is pending."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "First")

        # Act & Assert
        with pytest.raises(AssertionError, match="RequestAlreadyPending"):
            request_as(context, contract, user, "Second")

    def test_request_again_after_decline(self, context: AlgopyTestContext, contract: Administration):
        """Test that a resolved request allows a new one."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "First")
        contract.decline_latest_request(arc4.String("Not yet"), funding(context, contract))

        # Act
        request_as(context, contract, user, "Second")

        # Assert
        request = contract.latest_request_of(arc4.Address(user))
        assert request.comment.native == "Second"
        assert request.decline_reason.native == ""
        assert request.status.native == REQUEST_PENDING
        assert contract.get_pending_request_count().native == 1

    def test_latest_request_of_unknown_user(self, context: AlgopyTestContext, contract: Administration):
        """Test that a user without requests gets an empty record."""
        # Act
        request = contract.latest_request_of(arc4.Address(context.any.account()))

        # Assert
        assert request.comment.native == ""
        assert request.sender.native == Account()

    def test_block_and_unblock_user(self, context: AlgopyTestContext, contract: Administration):
        """Test blocking and unblocking a user."""
        # Arrange
        user = context.any.account()

        # Act & Assert
        self.block(context, contract, user)
        assert contract.status_of(arc4.Address(user)).native == USER_BLOCKED

        contract.unblock_user(arc4.Address(user))
        assert contract.status_of(arc4.Address(user)).native == USER_ACTIVE

    def test_block_and_unblock_emit_events(self, context: AlgopyTestContext, contract: Administration):
        """Test that Block and Unblock are logged with the current time."""
        # Arrange
        user = arc4.Address(context.any.account())

        # Act & Assert
        contract.block_user(user, funding(context, contract))
        event = Block(user=user, time=arc4.UInt64(NOW))
        assert context.txn.last_active.logs(0) == (
            arc4.arc4_signature("Block(address,uint64)") + event.bytes
        )

        contract.unblock_user(user)
        event = Unblock(user=user, time=arc4.UInt64(NOW))
        assert context.txn.last_active.logs(0) == (
            arc4.arc4_signature("Unblock(address,uint64)") + event.bytes
        )

    def test_block_requires_status_box_funding(self, context: AlgopyTestContext, contract: Administration):
        """Test that the first block pays for the status box and later ones do not."""
        # Arrange
        user = arc4.Address(context.any.account())

        # Act & Assert
        with pytest.raises(AssertionError, match="InsufficientBoxFunding"):
            contract.block_user(user, funding(context, contract, STATUS_BOX_COST - 1))

        contract.block_user(user, funding(context, contract, STATUS_BOX_COST))
        contract.unblock_user(user)
        contract.block_user(user, funding(context, contract, 0))

        assert contract.status_of(user).native == USER_BLOCKED

    def test_box_funding_must_pay_application(self, context: AlgopyTestContext, contract: Administration):
        """Test that box funding sent elsewhere is refused."""
        # Arrange
        elsewhere = context.any.txn.payment(receiver=context.any.account(), amount=UInt64(1_000_000))

        # Act & Assert
        with pytest.raises(AssertionError, match="InvalidPaymentReceiver"):
            contract.block_user(arc4.Address(context.any.account()), elsewhere)

    def test_block_is_idempotent(self, context: AlgopyTestContext, contract: Administration):
        """Test that blocking an already blocked user succeeds."""
        # Arrange
        user = context.any.account()
        self.block(context, contract, user)

        # Act
        self.block(context, contract, user)

        # Assert
        assert contract.status_of(arc4.Address(user)).native == USER_BLOCKED

    def test_only_admin_can_block(self, context: AlgopyTestContext, contract: Administration):
        """Test that non-admins cannot block or unblock."""
        # Arrange
        intruder = context.any.account()
        target = context.any.account()

        # Act & Assert
        with pytest.raises(AssertionError, match="NotAdmin"):
            with as_sender(context, intruder):
                self.block(context, contract, target)

        with pytest.raises(AssertionError, match="NotAdmin"):
            with as_sender(context, intruder):
                contract.unblock_user(arc4.Address(target))

    def test_promote_latest_request(self, context: AlgopyTestContext, contract: Administration):
        """Test granting benefactor status to the last request."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "I want to become a benefactor")

        # Act
        contract.promote_latest_request(funding(context, contract))

        # Assert
        assert contract.status_of(arc4.Address(user)).native == USER_BENEFACTOR
        assert contract.latest_request_of(arc4.Address(user)).status.native == REQUEST_APPROVED
        assert contract.get_pending_request_count().native == 0

    def test_promote_emits_event(self, context: AlgopyTestContext, contract: Administration):
        """Test that promotion logs GiveBenefactor."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "Promote me")

        # Act
        contract.promote_latest_request(funding(context, contract))

        # Assert
        event = GiveBenefactor(user=arc4.Address(user), time=arc4.UInt64(NOW))
        assert context.txn.last_active.logs(0) == (
            arc4.arc4_signature("GiveBenefactor(address,uint64)") + event.bytes
        )

    def test_promote_requires_status_box_funding(self, context: AlgopyTestContext, contract: Administration):
        """Test that promoting a user without a status box pays for it."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "Promote me")

        # Act & Assert
        with pytest.raises(AssertionError, match="InsufficientBoxFunding"):
            contract.promote_latest_request(funding(context, contract, STATUS_BOX_COST - 1))

        assert contract.get_pending_request_count().native == 1
        contract.promote_latest_request(funding(context, contract, STATUS_BOX_COST))
        assert contract.status_of(arc4.Address(user)).native == USER_BENEFACTOR

    def test_decline_latest_request(self, context: AlgopyTestContext, contract: Administration):
        """Test declining the last request records the reason."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "I want to become a benefactor")
        reason = "Not eligible"

        # Act
        contract.decline_latest_request(arc4.String(reason), funding(context, contract))

        # Assert
        request = contract.latest_request_of(arc4.Address(user))
        assert request.status.native == REQUEST_DECLINED
        assert request.decline_reason.native == reason
        assert contract.status_of(arc4.Address(user)).native == USER_ACTIVE

    def test_decline_emits_event(self, context: AlgopyTestContext, contract: Administration):
        """Test that declining logs DeclineBenefactor."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "Decline me")

        # Act
        contract.decline_latest_request(arc4.String("No"), funding(context, contract))

        # Assert
        event = DeclineBenefactor(user=arc4.Address(user), time=arc4.UInt64(NOW))
        assert context.txn.last_active.logs(0) == (
            arc4.arc4_signature("DeclineBenefactor(address,uint64)") + event.bytes
        )

    def test_decline_pays_for_reason_bytes(self, context: AlgopyTestContext, contract: Administration):
        """Test that the decline reason growth is funded at 400 per byte."""
        # Arrange
        request_as(context, contract, context.any.account(), "Please")
        reason = arc4.String("Not eligible")

        # Act & Assert
        with pytest.raises(AssertionError, match="InsufficientBoxFunding"):
            contract.decline_latest_request(reason, funding(context, contract, 4_799))

        contract.decline_latest_request(reason, funding(context, contract, 4_800))
        assert contract.get_pending_request_count().native == 0

    def test_decline_reason_is_not_bounded(self, context: AlgopyTestContext, contract: Administration):
        """Test that request decline accepts empty and long reasons."""
        # Arrange
        first = context.any.account()
        second = context.any.account()
        request_as(context, contract, first, "First")
        request_as(context, contract, second, "Second")

        # Act
        contract.decline_latest_request(arc4.String(""), funding(context, contract, 0))
        contract.decline_latest_request(arc4.String("a" * 250), funding(context, contract))

        # Assert
        assert contract.latest_request_of(arc4.Address(second)).decline_reason.native == ""
        assert contract.latest_request_of(arc4.Address(first)).decline_reason.native == "a" * 250

    def test_requests_resolved_last_in_first_out(self, context: AlgopyTestContext, contract: Administration):
        """Test that the most recent request is always resolved first."""
        # Arrange
        early = context.any.account()
        late = context.any.account()
        request_as(context, contract, early, "Early")
        request_as(context, contract, late, "Late")

        # Act
        contract.promote_latest_request(funding(context, contract))

        # Assert - the late request was approved, the early one still waits
        assert contract.status_of(arc4.Address(late)).native == USER_BENEFACTOR
        assert contract.status_of(arc4.Address(early)).native == USER_ACTIVE
        assert contract.latest_request_of(arc4.Address(early)).status.native == REQUEST_PENDING

        # A newer request jumps ahead of the early one again
        newest = context.any.account()
        request_as(context, contract, newest, "Newest")
        contract.decline_latest_request(arc4.String("No"), funding(context, contract))

        assert contract.latest_request_of(arc4.Address(newest)).status.native == REQUEST_DECLINED
        assert contract.latest_request_of(arc4.Address(early)).status.native == REQUEST_PENDING
        assert contract.get_pending_request_count().native == 1

    def test_empty_queue(self, context: AlgopyTestContext, contract: Administration):
        """Test that resolving without pending requests fails."""
        # Act & Assert
        with pytest.raises(AssertionError, match="EmptyQueue"):
            contract.promote_latest_request(funding(context, contract))

        with pytest.raises(AssertionError, match="EmptyQueue"):
            contract.decline_latest_request(arc4.String("Nothing to decline"), funding(context, contract))

    def test_only_admin_can_resolve_requests(self, context: AlgopyTestContext, contract: Administration):
        """Test that non-admins cannot promote or decline requests."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "Promote me")

        # Act & Assert
        with pytest.raises(AssertionError, match="NotAdmin"):
            with as_sender(context, user):
                contract.promote_latest_request(funding(context, contract))

        with pytest.raises(AssertionError, match="NotAdmin"):
            with as_sender(context, user):
                contract.decline_latest_request(arc4.String("Self decline"), funding(context, contract))

        assert contract.get_pending_request_count().native == 1

    def test_blocked_user_can_be_promoted(self, context: AlgopyTestContext, contract: Administration):
        """Test that promotion lifts a blocked user to benefactor."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "Please")
        self.block(context, contract, user)

        # Act
        contract.promote_latest_request(funding(context, contract, 0))

        # Assert
        assert contract.status_of(arc4.Address(user)).native == USER_BENEFACTOR

    def test_benefactor_status_is_permanent(self, context: AlgopyTestContext, contract: Administration):
        """Test that blocking and unblocking leave benefactor status intact."""
        # Arrange
        user = context.any.account()
        request_as(context, contract, user, "Please")
        contract.promote_latest_request(funding(context, contract))

        # Act & Assert
        self.block(context, contract, user)
        assert contract.status_of(arc4.Address(user)).native == USER_BENEFACTOR

        contract.unblock_user(arc4.Address(user))
        assert contract.status_of(arc4.Address(user)).native == USER_BENEFACTOR


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

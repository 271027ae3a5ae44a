"""
Fundraiser Factory Smart Contract for Benefactor Crowdfunding

Creates per-campaign fundraisers on top of the administration registry and
runs each campaign's donations, comments, upvotes and fund release.

Features:
- Create fundraisers with goal, duration and beneficiary
- Auto-approval for campaigns whose beneficiary is a benefactor
- Donations (blocked donors are recorded anonymously)
- Comments and upvotes
- Administrator approval / decline with a reason
- Beneficiary withdrawal once the goal is met
- Paged reads of fundraisers, donations and comments

Algorand Primitives Used:
- AVM Application (smart contract)
- Grouped payment transactions (donations, box minimum balance funding)
- Inner Transactions (fund release, fee paid by the caller via fee pooling)
- Boxes (fundraisers, donations, comments, upvoters)
"""

from algopy import (
    Bytes,
    BoxMap,
    Global,
    GlobalState,
    Txn,
    UInt64,
    arc4,
    gtxn,
    itxn,
    op,
    subroutine,
    urange,
)

from contracts.administration.contract import (
    Administration,
    USER_BENEFACTOR,
    USER_BLOCKED,
    box_cost,
    check_box_funding,
)


SECONDS_PER_DAY = 86_400
MAX_DECLINE_REASON_LENGTH = 200
MAX_UINT64 = 18_446_744_073_709_551_615

# Key lengths include the box map prefix
FUNDRAISER_KEY_LENGTH = 13  # b"fund_" + uint64
ITEM_KEY_LENGTH = 20  # b"don_" / b"com_" + uint64 + uint64
UPVOTE_KEY_LENGTH = 44  # b"upv_" + uint64 + address
UPVOTE_VALUE_LENGTH = 8

# Fundraiser status constants
FUNDRAISER_PENDING = 0
FUNDRAISER_APPROVED = 1
FUNDRAISER_DECLINED = 2
FUNDRAISER_FINISHED = 3


class FundraiserRecord(arc4.Struct):
    status: arc4.UInt8
    beneficiary: arc4.Address
    goal: arc4.UInt64
    deadline: arc4.UInt64
    created_at: arc4.UInt64
    total_donations: arc4.UInt64
    balance: arc4.UInt64
    title: arc4.String
    description: arc4.String
    uri: arc4.String
    decline_reason: arc4.String
    upvote_count: arc4.UInt64
    donation_count: arc4.UInt64
    comment_count: arc4.UInt64


class Donation(arc4.Struct):
    amount: arc4.UInt64
    comment: arc4.String
    sender: arc4.Address


class Comment(arc4.Struct):
    comment: arc4.String
    sender: arc4.Address


# Events
class FundraiserCreated(arc4.Struct):
    fundraiser_id: arc4.UInt64
    beneficiary: arc4.Address
    goal: arc4.UInt64
    deadline: arc4.UInt64


class DonationReceived(arc4.Struct):
    donor: arc4.Address
    amount: arc4.UInt64
    comment: arc4.String


class CommentCreated(arc4.Struct):
    creator: arc4.Address
    comment: arc4.String


class FundsWithdrawn(arc4.Struct):
    amount: arc4.UInt64
    time: arc4.UInt64


class UpvoteToggled(arc4.Struct):
    user: arc4.Address
    value: arc4.Bool


@subroutine
def item_key(fundraiser_id: UInt64, index: UInt64) -> Bytes:
    return op.itob(fundraiser_id) + op.itob(index)


@subroutine
def page_bounds(start: UInt64, limit: UInt64, total: UInt64) -> tuple[UInt64, UInt64]:
    if start >= total:
        return total, total

    end = total
    if limit < total - start:
        end = start + limit
    return start, end


class FundraiserFactory(Administration):
    """
    Fundraiser registry sharing the administration state.

    State Schema:
    - Global State (in addition to Administration):
        - fundraiser_count: Total fundraisers created

    - Boxes (in addition to Administration):
        - fund_{id}: Fundraiser record
        - don_{id}{index}: Donation records
        - com_{id}{index}: Comment records
        - upv_{id}{address}: Upvote markers

    Fundraiser ids are assigned in creation order and never reused.
    The application account holds every campaign's escrow; each record's
    balance is the part that belongs to that campaign.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fundraiser_count = GlobalState(UInt64(0))
        self.fundraisers = BoxMap(UInt64, FundraiserRecord, key_prefix=b"fund_")
        self.donations = BoxMap(Bytes, Donation, key_prefix=b"don_")
        self.comments = BoxMap(Bytes, Comment, key_prefix=b"com_")
        self.upvoters = BoxMap(Bytes, UInt64, key_prefix=b"upv_")

    @subroutine
    def _fundraiser(self, fundraiser_id: UInt64) -> FundraiserRecord:
        assert fundraiser_id in self.fundraisers, "FundraiserNotFound"
        return self.fundraisers[fundraiser_id].copy()

    @subroutine
    def _save(self, fundraiser_id: UInt64, record: FundraiserRecord) -> None:
        # A box keeps its created size, so a resized record is written anew
        if fundraiser_id in self.fundraisers:
            del self.fundraisers[fundraiser_id]
        self.fundraisers[fundraiser_id] = record.copy()

    @arc4.abimethod
    def create_fundraiser(
        self,
        beneficiary: arc4.Address,
        goal: arc4.UInt64,
        duration_in_days: arc4.UInt64,
        title: arc4.String,
        description: arc4.String,
        uri: arc4.String,
        box_funding: gtxn.PaymentTransaction,
    ) -> arc4.UInt64:
        """
        Create a new fundraiser.

        Args:
            beneficiary: Address allowed to withdraw the funds
            goal: Funding goal in microALGOs
            duration_in_days: Days from now until the deadline
            title: Campaign title
            description: Campaign description
            uri: Link to campaign media
            box_funding: Payment covering the record box, including room
                for the longest decline reason

        Returns:
            Fundraiser ID
        """
        assert self._status(Txn.sender) != USER_BLOCKED, "CallerBlocked"

        now = Global.latest_timestamp
        assert (
            duration_in_days.native <= (UInt64(MAX_UINT64) - now) // SECONDS_PER_DAY
        ), "DurationTooLong"
        deadline = now + duration_in_days.native * SECONDS_PER_DAY

        # Benefactors get their campaigns approved right away
        status = UInt64(FUNDRAISER_PENDING)
        if self._status(beneficiary.native) == USER_BENEFACTOR:
            status = UInt64(FUNDRAISER_APPROVED)

        fundraiser_id = self.fundraiser_count.value
        record = FundraiserRecord(
            status=arc4.UInt8(status),
            beneficiary=beneficiary,
            goal=goal,
            deadline=arc4.UInt64(deadline),
            created_at=arc4.UInt64(now),
            total_donations=arc4.UInt64(0),
            balance=arc4.UInt64(0),
            title=title,
            description=description,
            uri=uri,
            decline_reason=arc4.String(""),
            upvote_count=arc4.UInt64(0),
            donation_count=arc4.UInt64(0),
            comment_count=arc4.UInt64(0),
        )
        check_box_funding(
            box_funding,
            box_cost(
                UInt64(FUNDRAISER_KEY_LENGTH),
                record.bytes.length + MAX_DECLINE_REASON_LENGTH,
            ),
        )

        self.fundraiser_count.value = fundraiser_id + 1
        self.fundraisers[fundraiser_id] = record.copy()

        arc4.emit(
            FundraiserCreated(
                fundraiser_id=arc4.UInt64(fundraiser_id),
                beneficiary=beneficiary,
                goal=goal,
                deadline=arc4.UInt64(deadline),
            )
        )

        return arc4.UInt64(fundraiser_id)

    @arc4.abimethod(readonly=True)
    def get_fundraiser_count(self) -> arc4.UInt64:
        """
        Get total number of fundraisers.

        Returns:
            Fundraiser count
        """
        return arc4.UInt64(self.fundraiser_count.value)

    @arc4.abimethod(readonly=True)
    def list_fundraisers(
        self, start: arc4.UInt64, limit: arc4.UInt64
    ) -> arc4.DynamicArray[arc4.UInt64]:
        """
        Get a page of fundraiser ids in creation order.

        Args:
            start: Index of the first id
            limit: Maximum number of ids to return

        Returns:
            Ids from start, at most limit of them
        """
        first, end = page_bounds(start.native, limit.native, self.fundraiser_count.value)

        ids = arc4.DynamicArray[arc4.UInt64]()
        for fundraiser_id in urange(first, end):
            ids.append(arc4.UInt64(fundraiser_id))
        return ids

    @arc4.abimethod
    def donate(
        self,
        fundraiser_id: arc4.UInt64,
        payment: gtxn.PaymentTransaction,
        box_funding: gtxn.PaymentTransaction,
        comment: arc4.String,
    ) -> None:
        """
        Donate to a fundraiser.
        Must be grouped with a payment to the application account.

        A blocked donor's gift still counts, but is recorded with a zero
        sender and an empty comment.

        Args:
            fundraiser_id: ID of the fundraiser
            payment: Payment carrying the donation
            box_funding: Payment covering the donation record box
            comment: Message shown next to the donation
        """
        record = self._fundraiser(fundraiser_id.native)

        assert (
            payment.receiver == Global.current_application_address
        ), "InvalidPaymentReceiver"
        assert payment.amount > 0, "DonationTooLow"
        assert Global.latest_timestamp <= record.deadline.native, "CampaignExpired"

        donor = arc4.Address(Txn.sender)
        text = comment
        if self._status(Txn.sender) == USER_BLOCKED:
            donor = arc4.Address(Global.zero_address)
            text = arc4.String("")

        donation = Donation(
            amount=arc4.UInt64(payment.amount),
            comment=text,
            sender=donor,
        )
        check_box_funding(
            box_funding,
            box_cost(UInt64(ITEM_KEY_LENGTH), donation.bytes.length),
        )

        index = record.donation_count.native
        self.donations[item_key(fundraiser_id.native, index)] = donation.copy()

        record.donation_count = arc4.UInt64(index + 1)
        record.total_donations = arc4.UInt64(
            record.total_donations.native + payment.amount
        )
        record.balance = arc4.UInt64(record.balance.native + payment.amount)
        self._save(fundraiser_id.native, record)

        arc4.emit(
            DonationReceived(
                donor=donor,
                amount=arc4.UInt64(payment.amount),
                comment=text,
            )
        )

    @arc4.abimethod
    def comment(
        self,
        fundraiser_id: arc4.UInt64,
        text: arc4.String,
        box_funding: gtxn.PaymentTransaction,
    ) -> None:
        """
        Comment on a fundraiser. Blocked users cannot comment.

        Args:
            fundraiser_id: ID of the fundraiser
            text: Comment text
            box_funding: Payment covering the comment record box
        """
        record = self._fundraiser(fundraiser_id.native)

        assert Global.latest_timestamp <= record.deadline.native, "CampaignExpired"
        assert self._status(Txn.sender) != USER_BLOCKED, "CallerBlocked"

        entry = Comment(comment=text, sender=arc4.Address(Txn.sender))
        check_box_funding(
            box_funding,
            box_cost(UInt64(ITEM_KEY_LENGTH), entry.bytes.length),
        )

        index = record.comment_count.native
        self.comments[item_key(fundraiser_id.native, index)] = entry.copy()

        record.comment_count = arc4.UInt64(index + 1)
        self._save(fundraiser_id.native, record)

        arc4.emit(CommentCreated(creator=arc4.Address(Txn.sender), comment=text))

    @arc4.abimethod
    def approve(self, fundraiser_id: arc4.UInt64) -> None:
        """
        Approve a fundraiser and clear any decline reason.
        Only the administrator can approve.

        Args:
            fundraiser_id: ID of the fundraiser
        """
        self._only_admin()
        record = self._fundraiser(fundraiser_id.native)

        record.status = arc4.UInt8(FUNDRAISER_APPROVED)
        record.decline_reason = arc4.String("")
        self._save(fundraiser_id.native, record)

    @arc4.abimethod
    def decline(self, fundraiser_id: arc4.UInt64, reason: arc4.String) -> None:
        """
        Decline a fundraiser with a reason of 1 to 200 bytes.
        Only the administrator can decline. Room for the reason was
        paid for when the fundraiser was created.

        Args:
            fundraiser_id: ID of the fundraiser
            reason: Explanation shown to the campaign's audience
        """
        self._only_admin()
        record = self._fundraiser(fundraiser_id.native)

        reason_length = reason.native.bytes.length
        assert reason_length >= 1, "ReasonTooShort"
        assert reason_length <= MAX_DECLINE_REASON_LENGTH, "ReasonTooLong"

        record.status = arc4.UInt8(FUNDRAISER_DECLINED)
        record.decline_reason = reason
        self._save(fundraiser_id.native, record)

    @arc4.abimethod
    def withdraw_funds(self, fundraiser_id: arc4.UInt64) -> None:
        """
        Release the held balance to the beneficiary.
        Only the beneficiary can withdraw, and only once the goal is met.
        The caller covers the inner payment fee through fee pooling.

        Args:
            fundraiser_id: ID of the fundraiser
        """
        record = self._fundraiser(fundraiser_id.native)

        assert Txn.sender == record.beneficiary.native, "NotBeneficiary"

        goal_met = record.total_donations.native >= record.goal.native
        assert (
            goal_met or Global.latest_timestamp > record.deadline.native
        ), "DeadlineNotPassed"
        assert goal_met, "GoalNotMet"

        amount = record.balance.native

        # State is committed before the payment leaves the application
        record.status = arc4.UInt8(FUNDRAISER_FINISHED)
        record.balance = arc4.UInt64(0)
        self._save(fundraiser_id.native, record)

        arc4.emit(
            FundsWithdrawn(
                amount=arc4.UInt64(amount),
                time=arc4.UInt64(Global.latest_timestamp),
            )
        )

        itxn.Payment(
            receiver=Txn.sender,
            amount=amount,
            fee=0,
        ).submit()

    @arc4.abimethod
    def toggle_upvote(
        self,
        fundraiser_id: arc4.UInt64,
        box_funding: gtxn.PaymentTransaction,
    ) -> arc4.Bool:
        """
        Add the caller's upvote, or remove it if already present.

        Args:
            fundraiser_id: ID of the fundraiser
            box_funding: Payment covering the upvote box when adding;
                may be zero when removing

        Returns:
            True if the caller now upvotes the fundraiser
        """
        record = self._fundraiser(fundraiser_id.native)
        key = op.itob(fundraiser_id.native) + Txn.sender.bytes

        if key in self.upvoters:
            check_box_funding(box_funding, UInt64(0))
            del self.upvoters[key]
            record.upvote_count = arc4.UInt64(record.upvote_count.native - 1)
            upvoted = False
        else:
            check_box_funding(
                box_funding,
                box_cost(UInt64(UPVOTE_KEY_LENGTH), UInt64(UPVOTE_VALUE_LENGTH)),
            )
            self.upvoters[key] = UInt64(1)
            record.upvote_count = arc4.UInt64(record.upvote_count.native + 1)
            upvoted = True

        self._save(fundraiser_id.native, record)

        arc4.emit(UpvoteToggled(user=arc4.Address(Txn.sender), value=arc4.Bool(upvoted)))

        return arc4.Bool(upvoted)

    @arc4.abimethod(readonly=True)
    def has_upvoted(self, fundraiser_id: arc4.UInt64, user: arc4.Address) -> arc4.Bool:
        """
        Check whether a user currently upvotes a fundraiser.

        Returns:
            True if the user's upvote is present
        """
        key = op.itob(fundraiser_id.native) + user.bytes
        return arc4.Bool(key in self.upvoters)

    @arc4.abimethod(readonly=True)
    def get_donation(self, fundraiser_id: arc4.UInt64, index: arc4.UInt64) -> Donation:
        """
        Get a single donation.

        Args:
            fundraiser_id: ID of the fundraiser
            index: Position of the donation, in donation order

        Returns:
            The donation record
        """
        record = self._fundraiser(fundraiser_id.native)
        assert index.native < record.donation_count.native, "IndexOutOfRange"

        return self.donations[item_key(fundraiser_id.native, index.native)].copy()

    @arc4.abimethod(readonly=True)
    def get_donations(
        self,
        fundraiser_id: arc4.UInt64,
        start: arc4.UInt64,
        limit: arc4.UInt64,
    ) -> arc4.DynamicArray[Donation]:
        """
        Get a page of donations in donation order.
        Page through donation_count from get_details to read them all.

        Args:
            fundraiser_id: ID of the fundraiser
            start: Index of the first donation
            limit: Maximum number of donations to return

        Returns:
            Donations from start, at most limit of them
        """
        record = self._fundraiser(fundraiser_id.native)
        first, end = page_bounds(start.native, limit.native, record.donation_count.native)

        donations = arc4.DynamicArray[Donation]()
        for index in urange(first, end):
            donations.append(self.donations[item_key(fundraiser_id.native, index)].copy())
        return donations

    @arc4.abimethod(readonly=True)
    def get_comment(self, fundraiser_id: arc4.UInt64, index: arc4.UInt64) -> Comment:
        """
        Get a single comment.

        Args:
            fundraiser_id: ID of the fundraiser
            index: Position of the comment, in comment order

        Returns:
            The comment record
        """
        record = self._fundraiser(fundraiser_id.native)
        assert index.native < record.comment_count.native, "IndexOutOfRange"

        return self.comments[item_key(fundraiser_id.native, index.native)].copy()

    @arc4.abimethod(readonly=True)
    def get_comments(
        self,
        fundraiser_id: arc4.UInt64,
        start: arc4.UInt64,
        limit: arc4.UInt64,
    ) -> arc4.DynamicArray[Comment]:
        """
        Get a page of comments in comment order.

        Args:
            fundraiser_id: ID of the fundraiser
            start: Index of the first comment
            limit: Maximum number of comments to return

        Returns:
            Comments from start, at most limit of them
        """
        record = self._fundraiser(fundraiser_id.native)
        first, end = page_bounds(start.native, limit.native, record.comment_count.native)

        comments = arc4.DynamicArray[Comment]()
        for index in urange(first, end):
            comments.append(self.comments[item_key(fundraiser_id.native, index)].copy())
        return comments

    @arc4.abimethod(readonly=True)
    def get_details(self, fundraiser_id: arc4.UInt64) -> FundraiserRecord:
        """
        Get fundraiser details.

        Returns:
            Record of (status, beneficiary, goal, deadline, created_at,
            total_donations, balance, title, description, uri,
            decline_reason, upvote_count, donation_count, comment_count)
        """
        return self._fundraiser(fundraiser_id.native)

    @arc4.abimethod(readonly=True)
    def can_withdraw(self, fundraiser_id: arc4.UInt64) -> arc4.Bool:
        """
        Check whether the caller looks eligible to withdraw.

        True when the caller is the beneficiary and either the goal is met
        or the deadline has been reached. A campaign past its deadline with
        the goal unmet reports True here even though withdraw_funds fails
        with GoalNotMet.
        """
        record = self._fundraiser(fundraiser_id.native)

        reached = (
            record.total_donations.native >= record.goal.native
            or Global.latest_timestamp >= record.deadline.native
        )
        return arc4.Bool(reached and Txn.sender == record.beneficiary.native)

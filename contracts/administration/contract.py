"""
Administration Smart Contract for Benefactor Crowdfunding

Registry of participant status and arbiter of benefactor promotion requests.
The administrator is fixed when the application is created.

Features:
- Track user status (active, blocked, benefactor)
- Block and unblock users
- Self-service benefactor requests, one open request per user
- Approve or decline the most recently submitted request (stack order)
- Full on-chain transparency via ARC-28 events

Algorand Primitives Used:
- AVM Application (smart contract)
- Global State (administrator, pending request count)
- Boxes (user status, pending request stack, latest request per user)
- Grouped payment transactions (box minimum balance funding)
"""

from algopy import (
    ARC4Contract,
    Account,
    BoxMap,
    Global,
    GlobalState,
    Txn,
    UInt64,
    arc4,
    gtxn,
    subroutine,
)


# User status constants
USER_ACTIVE = 0
USER_BLOCKED = 1
USER_BENEFACTOR = 2

# Benefactor request status constants
REQUEST_PENDING = 0
REQUEST_APPROVED = 1
REQUEST_DECLINED = 2

# Box minimum balance = 2500 + 400 * (key_len + value_len) microALGOs
BOX_FLAT_MIN_BALANCE = 2_500
BOX_BYTE_MIN_BALANCE = 400

# Key lengths include the box map prefix
STATUS_KEY_LENGTH = 39  # b"status_" + address
QUEUE_KEY_LENGTH = 14  # b"queue_" + uint64
REQUEST_KEY_LENGTH = 40  # b"request_" + address

STATUS_VALUE_LENGTH = 8
QUEUE_VALUE_LENGTH = 32


@subroutine
def box_cost(key_length: UInt64, value_length: UInt64) -> UInt64:
    return BOX_FLAT_MIN_BALANCE + BOX_BYTE_MIN_BALANCE * (key_length + value_length)


@subroutine
def check_box_funding(payment: gtxn.PaymentTransaction, required: UInt64) -> None:
    """
    Require a grouped payment to the application covering new box storage,
    so box minimum balance never comes out of escrowed funds.
    """
    assert (
        payment.receiver == Global.current_application_address
    ), "InvalidPaymentReceiver"
    assert payment.amount >= required, "InsufficientBoxFunding"


class BenefactorRequest(arc4.Struct):
    comment: arc4.String
    decline_reason: arc4.String
    status: arc4.UInt8
    sender: arc4.Address


# Events
class Block(arc4.Struct):
    user: arc4.Address
    time: arc4.UInt64


class Unblock(arc4.Struct):
    user: arc4.Address
    time: arc4.UInt64


class GiveBenefactor(arc4.Struct):
    user: arc4.Address
    time: arc4.UInt64


class DeclineBenefactor(arc4.Struct):
    user: arc4.Address
    time: arc4.UInt64


class CreateBenefactorRequest(arc4.Struct):
    user: arc4.Address
    comment: arc4.String


class Administration(ARC4Contract):
    """
    User status registry with a benefactor request stack.

    State Schema:
    - Global State:
        - admin: Administrator address, set once on create
        - pending_request_count: Number of unresolved requests

    - Boxes:
        - status_{address}: User status (absent = active)
        - queue_{index}: Sender of the pending request at index
        - request_{address}: Latest request of a user, kept after resolution

    Pending requests are resolved last-in-first-out: the administrator
    always acts on the highest index.

    Calls that create or grow boxes take a `box_funding` payment to the
    application that covers the added minimum balance.
    """

    def __init__(self) -> None:
        self.admin = GlobalState(Account)
        self.pending_request_count = GlobalState(UInt64(0))
        self.user_status = BoxMap(Account, UInt64, key_prefix=b"status_")
        self.request_queue = BoxMap(UInt64, arc4.Address, key_prefix=b"queue_")
        self.latest_request = BoxMap(Account, BenefactorRequest, key_prefix=b"request_")

    @arc4.abimethod(create="require")
    def create(self) -> None:
        """
        Create the registry. The caller becomes the administrator.
        """
        self.admin.value = Txn.sender

    @subroutine
    def _only_admin(self) -> None:
        assert Txn.sender == self.admin.value, "NotAdmin"

    @subroutine
    def _status(self, user: Account) -> UInt64:
        return self.user_status.get(user, default=UInt64(USER_ACTIVE))

    @subroutine
    def _status_box_cost(self, user: Account) -> UInt64:
        if user in self.user_status:
            return UInt64(0)
        return box_cost(UInt64(STATUS_KEY_LENGTH), UInt64(STATUS_VALUE_LENGTH))

    @subroutine
    def _pop_latest_request(self) -> Account:
        assert self.pending_request_count.value > 0, "EmptyQueue"

        index = self.pending_request_count.value - 1
        sender = self.request_queue[index].native
        del self.request_queue[index]
        self.pending_request_count.value = index

        return sender

    @arc4.abimethod
    def request_benefactor_status(
        self,
        comment: arc4.String,
        box_funding: gtxn.PaymentTransaction,
    ) -> None:
        """
        Ask the administrator for benefactor status.

        Args:
            comment: Free-form motivation shown to the administrator
            box_funding: Payment covering the request and stack boxes
        """
        sender = Txn.sender
        if sender in self.latest_request:
            assert (
                self.latest_request[sender].status.native != REQUEST_PENDING
            ), "RequestAlreadyPending"

        request = BenefactorRequest(
            comment=comment,
            decline_reason=arc4.String(""),
            status=arc4.UInt8(REQUEST_PENDING),
            sender=arc4.Address(sender),
        )
        check_box_funding(
            box_funding,
            box_cost(UInt64(REQUEST_KEY_LENGTH), request.bytes.length)
            + box_cost(UInt64(QUEUE_KEY_LENGTH), UInt64(QUEUE_VALUE_LENGTH)),
        )

        # A previous decision record is replaced by the new request
        if sender in self.latest_request:
            del self.latest_request[sender]
        self.latest_request[sender] = request.copy()

        # Push onto the pending stack
        self.request_queue[self.pending_request_count.value] = arc4.Address(sender)
        self.pending_request_count.value += 1

        arc4.emit(CreateBenefactorRequest(user=arc4.Address(sender), comment=comment))

    @arc4.abimethod
    def block_user(
        self,
        user: arc4.Address,
        box_funding: gtxn.PaymentTransaction,
    ) -> None:
        """
        Block a user. Only the administrator can block.
        Benefactor status is never revoked, so blocking a benefactor
        leaves the status unchanged.

        Args:
            user: Address of the user to block
            box_funding: Payment covering the status box if it is new
        """
        self._only_admin()
        check_box_funding(box_funding, self._status_box_cost(user.native))

        if self._status(user.native) != USER_BENEFACTOR:
            self.user_status[user.native] = UInt64(USER_BLOCKED)

        arc4.emit(Block(user=user, time=arc4.UInt64(Global.latest_timestamp)))

    @arc4.abimethod
    def unblock_user(self, user: arc4.Address) -> None:
        """
        Unblock a user. Only the administrator can unblock.
        Users without a status box are already active.

        Args:
            user: Address of the user to unblock
        """
        self._only_admin()

        if self._status(user.native) == USER_BLOCKED:
            self.user_status[user.native] = UInt64(USER_ACTIVE)

        arc4.emit(Unblock(user=user, time=arc4.UInt64(Global.latest_timestamp)))

    @arc4.abimethod
    def promote_latest_request(self, box_funding: gtxn.PaymentTransaction) -> None:
        """
        Approve the most recently submitted pending request and grant
        the sender benefactor status.

        Args:
            box_funding: Payment covering the sender's status box if it is new
        """
        self._only_admin()
        assert self.pending_request_count.value > 0, "EmptyQueue"

        tail = self.request_queue[self.pending_request_count.value - 1].native
        check_box_funding(box_funding, self._status_box_cost(tail))

        sender = self._pop_latest_request()
        self.user_status[sender] = UInt64(USER_BENEFACTOR)

        request = self.latest_request[sender].copy()
        request.status = arc4.UInt8(REQUEST_APPROVED)
        self.latest_request[sender] = request.copy()

        arc4.emit(
            GiveBenefactor(
                user=arc4.Address(sender),
                time=arc4.UInt64(Global.latest_timestamp),
            )
        )

    @arc4.abimethod
    def decline_latest_request(
        self,
        reason: arc4.String,
        box_funding: gtxn.PaymentTransaction,
    ) -> None:
        """
        Decline the most recently submitted pending request.
        The reason is stored as given, without length bounds.

        Args:
            reason: Explanation recorded on the request
            box_funding: Payment covering the bytes the reason adds
        """
        self._only_admin()
        check_box_funding(box_funding, BOX_BYTE_MIN_BALANCE * reason.native.bytes.length)

        sender = self._pop_latest_request()

        request = self.latest_request[sender].copy()
        request.status = arc4.UInt8(REQUEST_DECLINED)
        request.decline_reason = reason
        del self.latest_request[sender]
        self.latest_request[sender] = request.copy()

        arc4.emit(
            DeclineBenefactor(
                user=arc4.Address(sender),
                time=arc4.UInt64(Global.latest_timestamp),
            )
        )

    @arc4.abimethod(readonly=True)
    def status_of(self, user: arc4.Address) -> arc4.UInt8:
        """
        Get a user's status.

        Returns:
            0 = active, 1 = blocked, 2 = benefactor
        """
        return arc4.UInt8(self._status(user.native))

    @arc4.abimethod(readonly=True)
    def latest_request_of(self, user: arc4.Address) -> BenefactorRequest:
        """
        Get the latest benefactor request of a user.

        Returns:
            The request record, or an empty record with a zero sender
            if the user never asked
        """
        if user.native in self.latest_request:
            return self.latest_request[user.native].copy()

        return BenefactorRequest(
            comment=arc4.String(""),
            decline_reason=arc4.String(""),
            status=arc4.UInt8(REQUEST_PENDING),
            sender=arc4.Address(Global.zero_address),
        )

    @arc4.abimethod(readonly=True)
    def get_pending_request_count(self) -> arc4.UInt64:
        """
        Get the number of unresolved benefactor requests.

        Returns:
            Pending request count
        """
        return arc4.UInt64(self.pending_request_count.value)

    @arc4.abimethod(readonly=True)
    def get_admin(self) -> arc4.Address:
        """
        Get the administrator address.

        Returns:
            Administrator set at creation
        """
        return arc4.Address(self.admin.value)

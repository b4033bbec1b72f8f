"""
Member repository for the library circulation service.

Registers members, resets their passwords and lists what they hold or are
waiting for. Passwords are hashed through ``CredentialVerifier`` before they
reach the session; the hash itself is never returned.
"""

import logging

from sqlalchemy import select

from ..models.circulation import CheckoutRecord, ReservationRecord
from ..models.member import Member as MemberModel
from ..models.member import MemberCreateSchema
from ..security import CredentialVerifier
from .errors import MemberNotFoundError
from .repository import BaseRepository
from .schema import Checkout as CheckoutDB
from .schema import Member as MemberDB
from .schema import Reservation as ReservationDB
from .session import run_atomic, safe_query

logger = logging.getLogger(__name__)


class MemberRepository(BaseRepository[MemberDB, MemberModel]):
    """Repository for member data access."""

    def __init__(self, session, verifier: CredentialVerifier | None = None):
        super().__init__(session)
        self.verifier = verifier or CredentialVerifier()

    @property
    def model_class(self):
        return MemberDB

    @property
    def response_schema(self):
        return MemberModel

    def create(self, member_data: MemberCreateSchema) -> MemberModel:
        """
        Register a member with a password.

        Names are not unique; two members may share a display name.
        """
        credential_hash = self.verifier.hash_password(member_data.password)

        def _create(session):
            db_member = MemberDB(name=member_data.name, credential_hash=credential_hash)
            session.add(db_member)
            session.flush()
            return self._to_response_model(db_member)

        member = run_atomic(self.session, "add member", _create)
        logger.info("Added member %d (%s)", member.id, member.name)
        return member

    def reset_password(self, member_id: int, new_password: str) -> MemberModel:
        """
        Replace a member's password; the old one stops working immediately.

        Raises:
            ValueError: If the new password is empty or whitespace
            MemberNotFoundError: If the member does not exist
        """
        if not new_password or not new_password.strip():
            raise ValueError("Password cannot be empty or whitespace")
        credential_hash = self.verifier.hash_password(new_password)

        def _reset(session):
            db_member = session.execute(
                select(MemberDB).where(MemberDB.id == member_id).with_for_update()
            ).scalar_one_or_none()
            if db_member is None:
                raise MemberNotFoundError(member_id)
            db_member.credential_hash = credential_hash
            return self._to_response_model(db_member)

        member = run_atomic(self.session, "reset password", _reset)
        logger.info("Password reset for member %d", member_id)
        return member

    def get_open_reservations(self, member_id: int) -> list[ReservationRecord]:
        """
        Books the member is waiting for, oldest reservation first.

        Raises:
            MemberNotFoundError: If the member does not exist
        """
        if not self.exists(member_id):
            raise MemberNotFoundError(member_id)
        query = (
            select(ReservationDB)
            .where(ReservationDB.member_id == member_id, ReservationDB.fulfilled_time.is_(None))
            .order_by(ReservationDB.created_time, ReservationDB.id)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            f"list reservations for member {member_id}",
        )
        return [ReservationRecord.model_validate(r) for r in rows]

    def get_active_checkouts(self, member_id: int) -> list[CheckoutRecord]:
        if not self.exists(member_id):
            raise MemberNotFoundError(member_id)
        query = (
            select(CheckoutDB)
            .where(CheckoutDB.member_id == member_id, CheckoutDB.end_time.is_(None))
            .order_by(CheckoutDB.start_time, CheckoutDB.id)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            f"list checkouts for member {member_id}",
        )
        return [CheckoutRecord.model_validate(r) for r in rows]

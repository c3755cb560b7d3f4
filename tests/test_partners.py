from datetime import date, datetime, timedelta
from typing import Optional

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import (
    Category,
    InvitationStatus,
    Partner,
    PartnerInvitation,
    PartnerStatus,
    User,
)
from schemas import ExpenseIn, SignupIn
from services import (
    ExpenseService,
    NotFoundError,
    PartnerService,
    PermissionDeniedError,
    UserService,
    expire_stale_invitations,
)


def make_user(session: Session, email: str, name: Optional[str] = None) -> User:
    user = User(email=email, full_name=name, password_hash="not-a-real-hash")
    session.add(user)
    session.commit()
    return user


def test_invite_and_accept_links_both_users() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com", "Alice")
        bob = make_user(session, "bob@example.com", "Bob")

        invitation = PartnerService(session, alice.id).invite(" Bob@Example.com ")
        assert invitation.status == InvitationStatus.pending
        assert invitation.to_email == "bob@example.com"
        assert len(invitation.token) == 64
        assert PartnerService(session, alice.id).signup_link(invitation).endswith(
            f"/signup?token={invitation.token}"
        )

        partner = PartnerService(session, bob.id).accept(invitation.token)
        assert partner.status == PartnerStatus.active
        assert partner.user1_id == alice.id
        assert partner.user2_id == bob.id
        assert partner.initiated_by == alice.id

        session.refresh(invitation)
        assert invitation.status == InvitationStatus.accepted
        assert PartnerService(session, alice.id).partner_user_id() == bob.id
        assert PartnerService(session, bob.id).partner_user_id() == alice.id


def test_invite_rejects_self_malformed_and_existing_partner() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        partners = PartnerService(session, alice.id)

        with pytest.raises(ValueError, match="cannot invite yourself"):
            partners.invite("ALICE@example.com")
        with pytest.raises(ValueError, match="valid email"):
            partners.invite("not-an-email")

        token = partners.invite(bob.email).token
        PartnerService(session, bob.id).accept(token)

        with pytest.raises(ValueError, match="already have a partner"):
            partners.invite("carol@example.com")


def test_accept_checks_recipient_and_expiry() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        carol = make_user(session, "carol@example.com")

        fresh = PartnerService(session, alice.id).invite(bob.email)
        with pytest.raises(PermissionDeniedError):
            PartnerService(session, carol.id).accept(fresh.token)
        with pytest.raises(NotFoundError):
            PartnerService(session, bob.id).accept("0" * 64)

        stale = PartnerService(session, alice.id).invite(
            carol.email, now=datetime.utcnow() - timedelta(days=30)
        )
        with pytest.raises(ValueError, match="expired"):
            PartnerService(session, carol.id).accept(stale.token)
        session.refresh(stale)
        assert stale.status == InvitationStatus.expired


def test_accept_refuses_when_inviter_is_already_linked() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        carol = make_user(session, "carol@example.com")

        to_bob = PartnerService(session, alice.id).invite(bob.email)
        to_carol = PartnerService(session, alice.id).invite(carol.email)
        PartnerService(session, bob.id).accept(to_bob.token)

        with pytest.raises(ValueError, match="inviting user already has a partner"):
            PartnerService(session, carol.id).accept(to_carol.token)


def test_reject_marks_invitation() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        invitation = PartnerService(session, alice.id).invite(bob.email)

        assert [i.id for i in PartnerService(session, bob.id).incoming_invitations()] == [
            invitation.id
        ]
        PartnerService(session, bob.id).reject(invitation.token)

        session.refresh(invitation)
        assert invitation.status == InvitationStatus.rejected
        with pytest.raises(ValueError, match="Invitation is rejected"):
            PartnerService(session, bob.id).accept(invitation.token)


def test_unlink_stops_sharing_expense_lists() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        food = Category(user_id=None, name="Food", icon="🍔", color="#F97316")
        session.add(food)
        session.commit()

        token = PartnerService(session, alice.id).invite(bob.email).token
        PartnerService(session, bob.id).accept(token)

        ExpenseService(session, bob.id).create(
            ExpenseIn(amount_cents=2500, category_id=food.id, date=date(2025, 3, 2))
        )
        assert len(ExpenseService(session, alice.id).list()) == 1

        PartnerService(session, alice.id).unlink()
        partner = session.scalars(select(Partner)).one()
        assert partner.status == PartnerStatus.blocked
        assert ExpenseService(session, alice.id).list() == []
        assert len(ExpenseService(session, bob.id).list()) == 1

        with pytest.raises(NotFoundError):
            PartnerService(session, alice.id).unlink()


def test_expire_stale_invitations_only_touches_overdue_pending() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        now = datetime(2025, 6, 1, 12, 0)
        service = PartnerService(session, alice.id)
        overdue = service.invite("old@example.com", now=now - timedelta(days=10))
        current = service.invite("new@example.com", now=now)

        assert expire_stale_invitations(session, now) == 1

        statuses = dict(
            session.execute(
                select(PartnerInvitation.id, PartnerInvitation.status)
            ).all()
        )
        assert statuses[overdue.id] == InvitationStatus.expired
        assert statuses[current.id] == InvitationStatus.pending
        assert service.expire_stale(now) == 0


def test_signup_with_invitation_links_in_one_step() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        token = PartnerService(session, alice.id).invite("bob@example.com").token

        bob = UserService(session).signup(
            SignupIn(
                email="Bob@Example.com",
                password="correct horse",
                full_name="Bob",
                invitation_token=token,
            )
        )
        assert bob.email == "bob@example.com"
        assert PartnerService(session, alice.id).partner_user_id() == bob.id
        signed_in = UserService(session).authenticate("bob@example.com", "correct horse")
        assert signed_in.id == bob.id
        with pytest.raises(PermissionDeniedError):
            UserService(session).authenticate("bob@example.com", "wrong password")


def test_signup_with_bad_invitation_creates_nothing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        users = UserService(session)
        with pytest.raises(NotFoundError):
            users.signup(
                SignupIn(
                    email="bob@example.com",
                    password="correct horse",
                    invitation_token="f" * 64,
                )
            )
        assert users.by_email("bob@example.com") is None

        users.signup(SignupIn(email="bob@example.com", password="correct horse"))
        with pytest.raises(ValueError, match="already exists"):
            users.signup(SignupIn(email="BOB@example.com", password="another one"))

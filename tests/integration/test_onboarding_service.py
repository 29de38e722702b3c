"""Integration tests for the onboarding workflow: submit, approve, reject and list."""

import asyncio
from uuid import UUID

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from classroll.config import settings
from classroll.exceptions import (
    ConflictException,
    InternalException,
    InvalidStateException,
    InvitationUnavailableException,
    NotFoundException,
    ValidationException,
)
from classroll.models import Invitation, RegistrationRequest, User
from classroll.models.invitation import InvitationKind, InvitationState
from classroll.models.registration import RegistrationState
from classroll.models.user import Role
from classroll.schemas.registration import GuardianIn, StudentIn
from classroll.services.account_service import AccountService
from classroll.services.invitation_service import InvitationService
from classroll.services.notification_service import NotificationService
from classroll.services.onboarding_service import OnboardingService
from classroll.services.registration_service import RegistrationService
from classroll.services.roster_service import RosterService
from classroll.utils.security import verify_password


def guardian_in(email: str = "carmen.rivera@gmail.com", **kwargs) -> GuardianIn:
    return GuardianIn(
        first_name=kwargs.pop("first_name", "Carmen"),
        last_name=kwargs.pop("last_name", "Rivera"),
        email=email,
        phone=kwargs.pop("phone", "+56 9 1234 5678"),
    )


def student_in(course_id: UUID, first_name: str = "Lucía", last_name: str = "Rivera", **kwargs) -> StudentIn:
    return StudentIn(first_name=first_name, last_name=last_name, course_id=course_id, **kwargs)


async def course_invitation(db, seed, max_uses: int = 5) -> tuple[UUID, str]:
    """Create a course invitation and return its id and code."""
    invitation = await InvitationService().create(
        db,
        kind=InvitationKind.COURSE,
        school_id=seed.school_id,
        creator_id=seed.admin_id,
        course_id=seed.course_id,
        max_uses=max_uses,
    )
    return invitation.id, invitation.code


async def count_users(db) -> int:
    return (await db.execute(select(func.count()).select_from(User))).scalar_one()


class FailingAccountService(AccountService):
    """Account directory that fails on the n-th account creation."""

    def __init__(self, fail_on_call: int):
        self.fail_on_call = fail_on_call
        self.calls = 0

    async def create_account(self, db, **kwargs) -> User:
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise RuntimeError("connection reset while inserting account")
        return await super().create_account(db, **kwargs)


class StalledInvitationService(InvitationService):
    """Invitation store whose consume hangs until the approval is abandoned."""

    def __init__(self):
        self.consume_started = asyncio.Event()

    async def consume(self, db, *args, **kwargs):
        self.consume_started.set()
        await asyncio.sleep(3600)
        return await super().consume(db, *args, **kwargs)


@pytest.mark.integration
class TestSubmit:
    """Tests for OnboardingService.submit."""

    @pytest.mark.asyncio
    async def test_submit_creates_pending_request(self, onboarding, mailer, db, seed) -> None:
        """A valid submission is stored PENDING, in order, and announced."""
        _, code = await course_invitation(db, seed)

        request = await onboarding.submit(
            db,
            code,
            guardian_in(email="Carmen.Rivera@gmail.com"),
            [
                student_in(seed.course_id, "Lucía", "Rivera"),
                student_in(seed.second_course_id, "Tomás", "Rivera", email="tomas.rivera@gmail.com"),
            ],
        )

        assert request.state == RegistrationState.PENDING.value
        assert request.school_id == seed.school_id
        assert request.guardian_email == "carmen.rivera@gmail.com"
        assert [s.first_name for s in request.students] == ["Lucía", "Tomás"]
        assert [s.position for s in request.students] == [0, 1]
        assert request.created_account_ids == []

        notifications, total = await NotificationService().list_for_user(db, seed.admin_id, unread_only=True)
        assert total == 1
        assert notifications[0].reference_id == request.id
        assert notifications[0].notification_type == "REGISTRATION_SUBMITTED"

        assert len(mailer.sent("notify_admins")) == 1
        received = mailer.sent("send_registration_received")
        assert len(received) == 1
        assert received[0]["to"] == "carmen.rivera@gmail.com"
        assert received[0]["school_name"] == "Colegio San Martín"
        assert received[0]["student_names"] == ["Lucía Rivera", "Tomás Rivera"]

    @pytest.mark.asyncio
    async def test_empty_student_list(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)

        with pytest.raises(ValidationException) as exc_info:
            await onboarding.submit(db, code, guardian_in(), [])

        assert exc_info.value.errors[0]["field"] == "students"

    @pytest.mark.asyncio
    async def test_existing_student_without_id(self, onboarding, db, seed) -> None:
        """An entry flagged as existing must say which student it is."""
        _, code = await course_invitation(db, seed)

        with pytest.raises(ValidationException) as exc_info:
            await onboarding.submit(
                db, code, guardian_in(), [student_in(seed.course_id, is_existing_student=True)]
            )

        assert exc_info.value.errors[0]["field"] == "students[0].existing_student_id"

    @pytest.mark.asyncio
    async def test_duplicate_emails_within_request(self, onboarding, db, seed) -> None:
        """A student can't reuse the guardian's email or another student's."""
        _, code = await course_invitation(db, seed)

        with pytest.raises(ValidationException) as exc_info:
            await onboarding.submit(
                db,
                code,
                guardian_in(),
                [
                    student_in(seed.course_id, email="carmen.rivera@gmail.com"),
                    student_in(seed.course_id, "Tomás", email="tomas@gmail.com"),
                    student_in(seed.course_id, "Elena", email="TOMAS@gmail.com"),
                ],
            )

        fields = [error["field"] for error in exc_info.value.errors]
        assert fields == ["students[0].email", "students[2].email"]

    @pytest.mark.asyncio
    async def test_unknown_course(self, onboarding, db, seed) -> None:
        from uuid_extensions import uuid7

        _, code = await course_invitation(db, seed)

        with pytest.raises(NotFoundException):
            await onboarding.submit(db, code, guardian_in(), [student_in(uuid7())])

    @pytest.mark.asyncio
    async def test_course_of_another_school(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)

        with pytest.raises(ValidationException) as exc_info:
            await onboarding.submit(
                db, code, guardian_in(), [student_in(seed.other_school_course_id)]
            )

        assert exc_info.value.errors[0]["field"] == "students[0].course_id"

    @pytest.mark.asyncio
    async def test_unknown_invitation_code(self, onboarding, db, seed) -> None:
        with pytest.raises(NotFoundException):
            await onboarding.submit(db, "ZZ99-ZZZZZZ", guardian_in(), [student_in(seed.course_id)])

    @pytest.mark.asyncio
    async def test_revoked_invitation(self, onboarding, db, seed) -> None:
        invitation_id, code = await course_invitation(db, seed)
        await InvitationService().revoke(db, invitation_id)

        with pytest.raises(InvitationUnavailableException) as exc_info:
            await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])

        assert exc_info.value.reason == "revoked"

    @pytest.mark.asyncio
    async def test_email_already_registered(self, onboarding, db, seed) -> None:
        """Guardian or new-student emails that already have an account conflict."""
        _, code = await course_invitation(db, seed)

        with pytest.raises(ConflictException) as exc_info:
            await onboarding.submit(
                db, code, guardian_in(email="ADMIN@sanmartin.edu"), [student_in(seed.course_id)]
            )

        assert "admin@sanmartin.edu" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_existing_student_email_is_not_a_conflict(self, onboarding, db, seed) -> None:
        """An existing student keeps their account, so their email is expected to exist."""
        _, code = await course_invitation(db, seed)

        request = await onboarding.submit(
            db,
            code,
            guardian_in(),
            [
                student_in(
                    seed.second_course_id,
                    "Mateo",
                    "Ríos",
                    email="mateo.rios@sanmartin.edu",
                    is_existing_student=True,
                    existing_student_id=seed.existing_student_id,
                )
            ],
        )

        assert request.students[0].is_existing_student is True

    @pytest.mark.asyncio
    async def test_second_pending_request_conflicts(self, onboarding, db, seed) -> None:
        """Only one request per guardian email may await review at a school."""
        _, code = await course_invitation(db, seed)
        await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])

        with pytest.raises(ConflictException):
            await onboarding.submit(db, code, guardian_in(), [student_in(seed.second_course_id, "Tomás")])

        total = (await db.execute(select(func.count()).select_from(RegistrationRequest))).scalar_one()
        assert total == 1

    @pytest.mark.asyncio
    async def test_concurrent_submissions_keep_one_pending(self, onboarding, db, seed, session_factory) -> None:
        """Two simultaneous submissions for the same guardian: one wins, one conflicts."""
        _, code = await course_invitation(db, seed)
        await db.commit()

        async def submit_once(first_name: str):
            async with session_factory() as session:
                request = await onboarding.submit(
                    session, code, guardian_in(), [student_in(seed.course_id, first_name)]
                )
                return request.id

        outcomes = await asyncio.gather(
            submit_once("Lucía"), submit_once("Tomás"), return_exceptions=True
        )

        assert len([o for o in outcomes if isinstance(o, UUID)]) == 1
        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], ConflictException)

        pending = (
            await db.execute(
                select(func.count())
                .select_from(RegistrationRequest)
                .where(RegistrationRequest.state == RegistrationState.PENDING.value)
            )
        ).scalar_one()
        assert pending == 1

    @pytest.mark.asyncio
    async def test_pending_email_index_backs_the_check(self, db, seed) -> None:
        """The database itself refuses a second pending request for the same email."""
        invitation_id, _ = await course_invitation(db, seed)
        registrations = RegistrationService()

        await registrations.create(
            db, seed.school_id, invitation_id, guardian_in(), [student_in(seed.course_id)]
        )
        with pytest.raises(IntegrityError):
            await registrations.create(
                db, seed.school_id, invitation_id, guardian_in(), [student_in(seed.course_id)]
            )
        await db.rollback()


@pytest.mark.integration
class TestApprove:
    """Tests for OnboardingService.approve."""

    @pytest.mark.asyncio
    async def test_approval_creates_accounts_and_consumes_invitation(
        self, onboarding, mailer, db, seed, monkeypatch
    ) -> None:
        """A single-use invitation is consumed by the approval of its only request."""
        monkeypatch.setattr(
            "classroll.services.invitation_service.generate_invitation_code",
            lambda kind, prefix=None: "CU25-AB3K7M",
        )
        invitation_id, code = await course_invitation(db, seed, max_uses=1)
        assert code == "CU25-AB3K7M"

        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        request_id = request.id

        result = await onboarding.approve(db, request_id, seed.admin_id)

        assert result.request_id == request_id
        assert result.total_students == 1
        assert len(result.created_student_ids) == 1
        assert result.associated_existing_student_ids == []
        assert result.created_account_ids == [result.guardian_id, *result.created_student_ids]
        assert result.email_sent is True

        invitation = await db.get(Invitation, invitation_id, populate_existing=True)
        assert invitation.state == InvitationState.CONSUMED.value
        assert invitation.uses_so_far == 1
        assert invitation.consumed_at is not None

        stored = await onboarding.get_request(db, request_id)
        assert stored.state == RegistrationState.APPROVED.value
        assert stored.reviewer_id == seed.admin_id
        assert stored.reviewed_at is not None
        assert stored.created_account_ids == [str(account_id) for account_id in result.created_account_ids]

        guardian = await db.get(User, result.guardian_id)
        assert guardian.role == Role.GUARDIAN.value
        assert guardian.email == "carmen.rivera@gmail.com"

        student_id = result.created_student_ids[0]
        student = await db.get(User, student_id)
        assert student.role == Role.STUDENT.value
        assert student.grade == "4"
        assert student.section == "A"
        assert student.email.endswith("@" + settings.generated_email_domain)
        assert await RosterService().get_roster(db, seed.course_id) == [student_id]
        assert await AccountService().get_associated_student_ids(db, result.guardian_id) == [student_id]

        approved = mailer.sent("send_registration_approved")
        assert len(approved) == 1
        assert approved[0]["to"] == "carmen.rivera@gmail.com"
        assert approved[0]["guardian_email"] == "carmen.rivera@gmail.com"
        assert approved[0]["students"][0].name == "Lucía Rivera"
        assert approved[0]["students"][0].course == "Cuarto A"
        assert approved[0]["students"][0].email_generated is True
        assert verify_password(approved[0]["guardian_password"], guardian.password_hash)
        assert verify_password(approved[0]["students"][0].password, student.password_hash)

        # The invitation is now spent
        with pytest.raises(InvitationUnavailableException) as exc_info:
            await onboarding.submit(
                db, code, guardian_in(email="jorge.soto@gmail.com", first_name="Jorge"), [student_in(seed.course_id)]
            )
        assert exc_info.value.reason == "exhausted"

    @pytest.mark.asyncio
    async def test_approval_with_existing_student(self, onboarding, mailer, db, seed) -> None:
        """An existing student is associated and enrolled but no account is created."""
        _, code = await course_invitation(db, seed)
        request = await onboarding.submit(
            db,
            code,
            guardian_in(),
            [
                student_in(
                    seed.second_course_id,
                    "Mateo",
                    "Ríos",
                    is_existing_student=True,
                    existing_student_id=seed.existing_student_id,
                ),
                student_in(seed.course_id, "Lucía", "Rivera", student_code="EST-0042"),
            ],
        )
        request_id = request.id
        users_before = await count_users(db)

        result = await onboarding.approve(db, request_id, seed.admin_id)

        assert result.associated_existing_student_ids == [seed.existing_student_id]
        assert len(result.created_student_ids) == 1
        assert result.total_students == 2
        assert seed.existing_student_id not in result.created_account_ids
        assert await count_users(db) == users_before + 2

        assert await AccountService().get_associated_student_ids(db, result.guardian_id) == [
            seed.existing_student_id,
            result.created_student_ids[0],
        ]
        assert await RosterService().is_member(db, seed.second_course_id, seed.existing_student_id)

        new_student = await db.get(User, result.created_student_ids[0])
        assert new_student.student_code == "EST-0042"

        lines = mailer.sent("send_registration_approved")[0]["students"]
        assert lines[0].existing is True
        assert lines[0].password is None
        assert lines[1].existing is False
        assert lines[1].password

    @pytest.mark.asyncio
    async def test_missing_existing_student(self, onboarding, db, seed) -> None:
        """An existing-student entry pointing at someone who isn't a student fails the approval."""
        _, code = await course_invitation(db, seed)
        request = await onboarding.submit(
            db,
            code,
            guardian_in(),
            [
                student_in(
                    seed.course_id,
                    "Laura",
                    "Gómez",
                    is_existing_student=True,
                    existing_student_id=seed.admin_id,
                )
            ],
        )
        request_id = request.id
        users_before = await count_users(db)

        with pytest.raises(NotFoundException):
            await onboarding.approve(db, request_id, seed.admin_id)

        assert await count_users(db) == users_before
        stored = await onboarding.get_request(db, request_id)
        assert stored.state == RegistrationState.PENDING.value

    @pytest.mark.asyncio
    async def test_failure_midway_rolls_everything_back(self, mailer, db, seed) -> None:
        """If the second of three students fails, nothing of the approval is kept."""
        onboarding = OnboardingService(accounts=FailingAccountService(fail_on_call=3), mailer=mailer)
        invitation_id, code = await course_invitation(db, seed, max_uses=1)
        request = await onboarding.submit(
            db,
            code,
            guardian_in(),
            [
                student_in(seed.course_id, "Lucía"),
                student_in(seed.course_id, "Tomás"),
                student_in(seed.second_course_id, "Elena"),
            ],
        )
        request_id = request.id
        users_before = await count_users(db)

        with pytest.raises(InternalException) as exc_info:
            await onboarding.approve(db, request_id, seed.admin_id)

        assert "connection reset" not in exc_info.value.message
        assert await count_users(db) == users_before

        stored = await onboarding.get_request(db, request_id)
        assert stored.state == RegistrationState.PENDING.value
        assert stored.reviewer_id is None
        assert stored.created_account_ids == []

        invitation = await db.get(Invitation, invitation_id, populate_existing=True)
        assert invitation.state == InvitationState.ACTIVE.value
        assert invitation.uses_so_far == 0
        assert mailer.sent("send_registration_approved") == []

    async def _submit_single_student(self, onboarding, db, seed) -> tuple[UUID, UUID]:
        invitation_id, code = await course_invitation(db, seed, max_uses=1)
        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        return invitation_id, request.id

    async def _assert_nothing_approved(self, onboarding, db, invitation_id, request_id, users_before) -> None:
        assert await count_users(db) == users_before

        stored = await onboarding.get_request(db, request_id)
        assert stored.state == RegistrationState.PENDING.value
        assert stored.created_account_ids == []

        invitation = await db.get(Invitation, invitation_id, populate_existing=True)
        assert invitation.state == InvitationState.ACTIVE.value
        assert invitation.uses_so_far == 0

    @pytest.mark.asyncio
    async def test_deadline_aborts_approval(self, mailer, db, seed, monkeypatch) -> None:
        """An approval that outlives its deadline is rolled back and reported as retryable."""
        monkeypatch.setattr(settings, "onboarding_transaction_timeout_seconds", 0.05)
        onboarding = OnboardingService(invitations=StalledInvitationService(), mailer=mailer)
        invitation_id, request_id = await self._submit_single_student(onboarding, db, seed)
        users_before = await count_users(db)

        with pytest.raises(InternalException) as exc_info:
            await onboarding.approve(db, request_id, seed.admin_id)

        assert exc_info.value.retryable is True
        await self._assert_nothing_approved(onboarding, db, invitation_id, request_id, users_before)
        assert mailer.sent("send_registration_approved") == []

    @pytest.mark.asyncio
    async def test_cancelled_approval_leaves_no_trace(self, mailer, db, seed, monkeypatch) -> None:
        """Cancelling the approving task mid-transaction rolls back every write."""
        monkeypatch.setattr(settings, "onboarding_transaction_timeout_seconds", None)
        invitations = StalledInvitationService()
        onboarding = OnboardingService(invitations=invitations, mailer=mailer)
        invitation_id, request_id = await self._submit_single_student(onboarding, db, seed)
        users_before = await count_users(db)
        await db.commit()

        task = asyncio.create_task(onboarding.approve(db, request_id, seed.admin_id))
        await asyncio.wait_for(invitations.consume_started.wait(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        await self._assert_nothing_approved(onboarding, db, invitation_id, request_id, users_before)
        assert mailer.sent("send_registration_approved") == []

        assert mailer.sent("send_registration_approved") == []

    @pytest.mark.asyncio
    async def test_concurrent_approvals_share_single_use_invitation(
        self, onboarding, db, seed, session_factory
    ) -> None:
        """Two requests on a single-use invitation: only one approval can win."""
        invitation_id, code = await course_invitation(db, seed, max_uses=1)
        first = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        second = await onboarding.submit(
            db,
            code,
            guardian_in(email="jorge.soto@gmail.com", first_name="Jorge", last_name="Soto"),
            [student_in(seed.course_id, "Sofía", "Soto")],
        )
        request_ids = [first.id, second.id]
        await db.commit()

        async def approve_once(request_id: UUID):
            async with session_factory() as session:
                return await onboarding.approve(session, request_id, seed.admin_id)

        outcomes = await asyncio.gather(
            *(approve_once(request_id) for request_id in request_ids), return_exceptions=True
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidStateException)
        assert errors[0].reason == "exhausted"

        states = sorted(
            [(await onboarding.get_request(db, request_id)).state for request_id in request_ids]
        )
        assert states == [RegistrationState.APPROVED.value, RegistrationState.PENDING.value]

        guardians = (
            await db.execute(
                select(func.count()).select_from(User).where(User.role == Role.GUARDIAN.value)
            )
        ).scalar_one()
        assert guardians == 1

        invitation = await db.get(Invitation, invitation_id, populate_existing=True)
        assert invitation.uses_so_far == 1

    @pytest.mark.asyncio
    async def test_approve_twice(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)
        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        request_id = request.id
        await onboarding.approve(db, request_id, seed.admin_id)

        with pytest.raises(InvalidStateException) as exc_info:
            await onboarding.approve(db, request_id, seed.admin_id)

        assert exc_info.value.reason == "approved"

    @pytest.mark.asyncio
    async def test_unknown_request(self, onboarding, db, seed) -> None:
        from uuid_extensions import uuid7

        with pytest.raises(NotFoundException):
            await onboarding.approve(db, uuid7(), seed.admin_id)

    @pytest.mark.asyncio
    async def test_mail_failures_never_undo_approval(self, onboarding, mailer, db, seed) -> None:
        """A broken mail server costs the emails, not the accounts."""
        mailer.fail = True
        _, code = await course_invitation(db, seed)

        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        request_id = request.id
        result = await onboarding.approve(db, request_id, seed.admin_id)

        assert result.email_sent is False
        stored = await onboarding.get_request(db, request_id)
        assert stored.state == RegistrationState.APPROVED.value
        assert len(mailer.sent("send_registration_received")) == 1
        assert len(mailer.sent("send_registration_approved")) == 1


@pytest.mark.integration
class TestReject:
    """Tests for OnboardingService.reject."""

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)
        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])

        with pytest.raises(ValidationException):
            await onboarding.reject(db, request.id, seed.admin_id, "   ")

    @pytest.mark.asyncio
    async def test_reject(self, onboarding, mailer, db, seed) -> None:
        """Rejection records the reason, leaves the invitation alone and tells the guardian."""
        invitation_id, code = await course_invitation(db, seed, max_uses=1)
        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        request_id = request.id

        rejected = await onboarding.reject(db, request_id, seed.admin_id, "  Course is full  ")

        assert rejected.state == RegistrationState.REJECTED.value
        assert rejected.comments == "Course is full"
        assert rejected.reviewer_id == seed.admin_id

        invitation = await db.get(Invitation, invitation_id, populate_existing=True)
        assert invitation.uses_so_far == 0

        sent = mailer.sent("send_registration_rejected")
        assert len(sent) == 1
        assert sent[0]["reason"] == "Course is full"
        assert sent[0]["school_name"] == "Colegio San Martín"

        with pytest.raises(InvalidStateException) as exc_info:
            await onboarding.reject(db, request_id, seed.admin_id, "again")
        assert exc_info.value.reason == "rejected"

        with pytest.raises(InvalidStateException):
            await onboarding.approve(db, request_id, seed.admin_id)

    @pytest.mark.asyncio
    async def test_guardian_can_resubmit_after_rejection(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)
        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        await onboarding.reject(db, request.id, seed.admin_id, "Wrong course")

        again = await onboarding.submit(db, code, guardian_in(), [student_in(seed.second_course_id)])

        assert again.state == RegistrationState.PENDING.value


@pytest.mark.integration
class TestListing:
    """Tests for the listing operations."""

    @pytest.mark.asyncio
    async def test_pending_and_history(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)
        kept = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])
        dropped = await onboarding.submit(
            db,
            code,
            guardian_in(email="jorge.soto@gmail.com", first_name="Jorge", last_name="Soto"),
            [student_in(seed.course_id, "Sofía", "Soto")],
        )
        kept_id, dropped_id = kept.id, dropped.id
        await onboarding.reject(db, dropped_id, seed.admin_id, "Duplicate family")

        pending, total = await onboarding.list_pending(db, seed.school_id)
        assert total == 1
        assert [r.id for r in pending] == [kept_id]

        history, total = await onboarding.list_history(db, seed.school_id)
        assert total == 2
        assert [r.id for r in history] == [dropped_id, kept_id]

        rejected, total = await onboarding.list_history(db, seed.school_id, state="REJECTED")
        assert total == 1
        assert rejected[0].id == dropped_id

        empty, total = await onboarding.list_pending(db, seed.other_school_id)
        assert (empty, total) == ([], 0)

    @pytest.mark.asyncio
    async def test_invalid_school_id_lists_every_school(self, onboarding, db, seed) -> None:
        """An unparseable school id drops the filter instead of failing."""
        _, code = await course_invitation(db, seed)
        await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])

        pending, total = await onboarding.list_pending(db, "not-a-uuid")
        assert total == 1
        assert len(pending) == 1

        pending, total = await onboarding.list_pending(db, None)
        assert total == 1

    @pytest.mark.asyncio
    async def test_pagination(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)
        for index in range(3):
            await onboarding.submit(
                db,
                code,
                guardian_in(email=f"family{index}@gmail.com"),
                [student_in(seed.course_id)],
            )

        page, total = await onboarding.list_pending(db, seed.school_id, page=2, page_size=2)
        assert total == 3
        assert len(page) == 1

    @pytest.mark.asyncio
    async def test_get_request_of_another_school(self, onboarding, db, seed) -> None:
        _, code = await course_invitation(db, seed)
        request = await onboarding.submit(db, code, guardian_in(), [student_in(seed.course_id)])

        with pytest.raises(NotFoundException):
            await onboarding.get_request(db, request.id, seed.other_school_id)

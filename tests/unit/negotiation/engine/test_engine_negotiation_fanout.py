import logging

import pytest
from tenacity import wait_none

from src.core.negotiation import (
    CallerContext,
    NotificationFanout,
    ProposalAuthorizationError,
    ProposalNotFoundError,
)
from src.core.negotiation.models import (
    MessagePostedEvent,
    ProposalCreatedEvent,
    ProposalRespondedEvent,
)
from src.core.negotiation.notifications import build_notification
from src.infrastructure.negotiation import InMemoryNegotiationRepository
from tests.factories import BASE_TIME, CREATOR_ID, SPONSOR_ID, notification


class _FlakyRepository(InMemoryNegotiationRepository):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def create_notification(self, notification):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("notification store unavailable")
        super().create_notification(notification)


def _created_event() -> ProposalCreatedEvent:
    return ProposalCreatedEvent(
        proposal_id="prp_000000000001",
        actor_id=SPONSOR_ID,
        recipient_id=CREATOR_ID,
        content_id="vid_001",
        subject_excerpt="Spring series",
        occurred_at=BASE_TIME,
    )


@pytest.mark.parametrize(
    ("event", "expected_type", "expected_recipient", "expected_title"),
    [
        (_created_event(), "NEW_PROPOSAL", CREATOR_ID, "New proposal received"),
        (
            ProposalRespondedEvent(
                proposal_id="prp_000000000001",
                actor_id=CREATOR_ID,
                recipient_id=SPONSOR_ID,
                decision="ACCEPTED",
                subject_excerpt="Spring series",
                occurred_at=BASE_TIME,
            ),
            "PROPOSAL_ACCEPTED",
            SPONSOR_ID,
            "Proposal accepted",
        ),
        (
            ProposalRespondedEvent(
                proposal_id="prp_000000000001",
                actor_id=CREATOR_ID,
                recipient_id=SPONSOR_ID,
                decision="REJECTED",
                subject_excerpt="Spring series",
                occurred_at=BASE_TIME,
            ),
            "PROPOSAL_REJECTED",
            SPONSOR_ID,
            "Proposal declined",
        ),
        (
            MessagePostedEvent(
                proposal_id="prp_000000000001",
                actor_id=SPONSOR_ID,
                recipient_id=CREATOR_ID,
                message_excerpt="See attached",
                occurred_at=BASE_TIME,
            ),
            "NEW_MESSAGE",
            CREATOR_ID,
            "New message",
        ),
    ],
)
def test_build_notification_templates(event, expected_type, expected_recipient, expected_title):
    record = build_notification(event, notification_id="ntf_1", created_at=BASE_TIME)
    assert record.type == expected_type
    assert record.user_id == expected_recipient
    assert record.title == expected_title
    assert record.is_read is False
    assert record.read_at is None
    assert record.proposal_id == "prp_000000000001"


def test_build_notification_rejects_unknown_events():
    with pytest.raises(TypeError):
        build_notification(object(), notification_id="ntf_1", created_at=BASE_TIME)


def _flaky_fanout(repository, clock, max_attempts):
    return NotificationFanout(
        repository=repository, max_attempts=max_attempts, retry_wait=wait_none(), clock=clock
    )


def test_emit_retries_transient_failures(clock):
    repository = _FlakyRepository(failures=2)
    fanout = _flaky_fanout(repository, clock, max_attempts=3)

    delivered = fanout.emit(_created_event())

    assert delivered is not None
    assert repository.attempts == 3
    assert fanout.pending_count == 0
    assert repository.get_notification(notification_id=delivered.notification_id) == delivered


def test_emit_backs_off_between_attempts(clock):
    repository = _FlakyRepository(failures=2)
    waits = []
    fanout = NotificationFanout(
        repository=repository,
        max_attempts=3,
        retry_wait=lambda retry_state: waits.append(retry_state.attempt_number) or 0,
        clock=clock,
    )

    assert fanout.emit(_created_event()) is not None
    assert waits == [1, 2]


def test_emit_parks_undeliverable_notifications_and_logs(clock, caplog):
    repository = _FlakyRepository(failures=3)
    fanout = _flaky_fanout(repository, clock, max_attempts=2)

    with caplog.at_level(logging.WARNING, logger="src.core.negotiation.notifications"):
        assert fanout.emit(_created_event()) is None

    assert fanout.pending_count == 1
    messages = [record.getMessage() for record in caplog.records]
    assert messages.count("notification.write_failed") == 2
    assert "notification.parked" in messages

    assert fanout.retry_pending() == 0
    assert fanout.pending_count == 1

    assert fanout.retry_pending() == 1
    assert fanout.pending_count == 0
    assert repository.count_notifications(
        user_id=CREATOR_ID, notification_type="NEW_PROPOSAL", is_read=None
    ) == 1


def test_emit_does_not_retry_non_transient_errors(clock):
    class _RejectingRepository(InMemoryNegotiationRepository):
        attempts = 0

        def create_notification(self, notification):
            self.attempts += 1
            raise ValueError("notification row rejected")

    repository = _RejectingRepository()
    fanout = _flaky_fanout(repository, clock, max_attempts=3)

    with pytest.raises(ValueError):
        fanout.emit(_created_event())
    assert repository.attempts == 1
    assert fanout.pending_count == 0


def test_emit_all_drains_outbox_before_next_event(clock):
    repository = _FlakyRepository(failures=1)
    fanout = _flaky_fanout(repository, clock, max_attempts=1)

    assert fanout.emit(_created_event()) is None
    assert fanout.pending_count == 1

    clock.advance(minutes=1)
    delivered = fanout.emit_all([_created_event()])

    assert len(delivered) == 1
    assert fanout.pending_count == 0
    inbox = repository.list_notifications(
        user_id=CREATOR_ID, notification_type=None, is_read=None, limit=10, offset=0
    )
    assert len(inbox) == 2
    assert inbox[0].notification_id == delivered[0].notification_id


def test_retry_pending_stops_at_first_failure_and_keeps_order(clock):
    repository = _FlakyRepository(failures=3)
    fanout = _flaky_fanout(repository, clock, max_attempts=1)

    assert fanout.emit(_created_event()) is None
    clock.advance(minutes=1)
    assert fanout.emit(_created_event()) is None
    assert repository.attempts == 3
    assert fanout.pending_count == 2

    repository.failures = 1
    assert fanout.retry_pending() == 0
    assert repository.attempts == 4
    assert fanout.pending_count == 2

    assert fanout.retry_pending() == 2
    assert fanout.pending_count == 0
    inbox = repository.list_notifications(
        user_id=CREATOR_ID, notification_type=None, is_read=None, limit=10, offset=0
    )
    assert [item.created_at for item in inbox] == [
        BASE_TIME.replace(minute=1),
        BASE_TIME,
    ]


def test_list_by_user_filters_and_counts(repository, fanout, clock):
    for index, (kind, is_read) in enumerate(
        [
            ("NEW_PROPOSAL", True),
            ("NEW_MESSAGE", False),
            ("NEW_MESSAGE", False),
            ("PROPOSAL_ACCEPTED", False),
        ]
    ):
        repository.create_notification(
            notification(
                f"ntf_{index}",
                notification_type=kind,
                is_read=is_read,
                created_at=BASE_TIME.replace(minute=index),
            )
        )
    repository.create_notification(notification("ntf_other", user_id=SPONSOR_ID))
    caller = CallerContext(user_id=CREATOR_ID, role="CREATOR")

    everything = fanout.list_by_user(caller=caller)
    assert [item.notification_id for item in everything.items] == [
        "ntf_3",
        "ntf_2",
        "ntf_1",
        "ntf_0",
    ]
    assert everything.total_count == 4
    assert everything.unread_count == 3
    assert everything.has_more is False

    messages = fanout.list_by_user(caller=caller, notification_type="NEW_MESSAGE", limit=1)
    assert messages.total_count == 2
    assert messages.unread_count == 3
    assert messages.has_more is True

    read = fanout.list_by_user(caller=caller, is_read=True)
    assert [item.notification_id for item in read.items] == ["ntf_0"]


def test_list_by_user_requires_caller(fanout):
    with pytest.raises(ProposalAuthorizationError) as caught:
        fanout.list_by_user(caller=CallerContext())
    assert caught.value.code == "CALLER_REQUIRED"


def test_mark_read_is_recipient_only_and_idempotent(repository, fanout, clock):
    repository.create_notification(notification("ntf_1"))
    recipient = CallerContext(user_id=CREATOR_ID, role="CREATOR")

    with pytest.raises(ProposalAuthorizationError) as other:
        fanout.mark_read(
            notification_id="ntf_1", caller=CallerContext(user_id=SPONSOR_ID, role="SPONSOR")
        )
    assert other.value.code == "RECIPIENT_REQUIRED"

    first = fanout.mark_read(notification_id="ntf_1", caller=recipient)
    assert first.is_read is True
    assert first.read_at == clock.now

    clock.advance(hours=1)
    second = fanout.mark_read(notification_id="ntf_1", caller=recipient)
    assert second.read_at == first.read_at

    with pytest.raises(ProposalNotFoundError) as missing:
        fanout.mark_read(notification_id="ntf_missing", caller=recipient)
    assert missing.value.code == "NOTIFICATION_NOT_FOUND"

from datetime import timedelta

from src.infrastructure.negotiation import InMemoryNegotiationRepository
from tests.factories import BASE_TIME, CREATOR_ID, SPONSOR_ID, message, notification, proposal


def test_in_memory_repository_returns_copies():
    repository = InMemoryNegotiationRepository()
    record = proposal()
    repository.create_proposal(record)

    record.subject = "mutated by caller"
    loaded = repository.get_proposal(proposal_id=record.proposal_id)
    assert loaded.subject == "Sponsorship for spring series"

    loaded.subject = "mutated again"
    assert repository.get_proposal(proposal_id=record.proposal_id).subject == (
        "Sponsorship for spring series"
    )
    assert repository.get_proposal(proposal_id="prp_missing") is None


def test_compare_and_set_requires_expected_version_and_live_row():
    repository = InMemoryNegotiationRepository()
    repository.create_proposal(proposal())

    accepted = proposal(status="ACCEPTED").model_copy(update={"version": 2})
    assert repository.compare_and_set_proposal(proposal=accepted, expected_version=1)
    assert not repository.compare_and_set_proposal(
        proposal=proposal(status="REJECTED").model_copy(update={"version": 2}),
        expected_version=1,
    )
    assert repository.get_proposal(proposal_id=accepted.proposal_id).status == "ACCEPTED"

    removed = accepted.model_copy(update={"removed_at": BASE_TIME, "version": 3})
    assert repository.compare_and_set_proposal(proposal=removed, expected_version=2)
    assert not repository.compare_and_set_proposal(proposal=removed, expected_version=3)
    assert not repository.compare_and_set_proposal(
        proposal=proposal("prp_unknown"), expected_version=1
    )


def test_compare_and_set_rejects_stale_copy_with_unchanged_status():
    repository = InMemoryNegotiationRepository()
    repository.create_proposal(proposal())
    edited = proposal(subject="Revised budget terms").model_copy(update={"version": 2})
    assert repository.compare_and_set_proposal(proposal=edited, expected_version=1)

    stale = proposal(status="ACCEPTED").model_copy(update={"version": 2})
    assert not repository.compare_and_set_proposal(proposal=stale, expected_version=1)
    stored = repository.get_proposal(proposal_id=edited.proposal_id)
    assert stored.subject == "Revised budget terms"
    assert stored.status == "PENDING"


def test_list_and_count_exclude_removed_rows():
    repository = InMemoryNegotiationRepository()
    repository.create_proposal(proposal("prp_a"))
    repository.create_proposal(
        proposal("prp_b", created_at=BASE_TIME + timedelta(minutes=1)).model_copy(
            update={"removed_at": BASE_TIME}
        )
    )

    rows = repository.list_proposals(
        user_id=SPONSOR_ID,
        role="SPONSOR",
        status=None,
        search=None,
        sort="newest",
        limit=None,
        offset=0,
    )
    assert [row.proposal_id for row in rows] == ["prp_a"]
    assert repository.count_proposals(
        user_id=CREATOR_ID, role="CREATOR", status=None, search=None
    ) == 1


def test_search_matches_subject_or_message_case_insensitively():
    repository = InMemoryNegotiationRepository()
    repository.create_proposal(proposal("prp_a", subject="Winter Promo", message="x" * 12))
    repository.create_proposal(proposal("prp_b", subject="Other thing", message="about WINTER"))
    repository.create_proposal(proposal("prp_c", subject="Summer", message="nothing here"))

    assert repository.count_proposals(
        user_id=SPONSOR_ID, role="SPONSOR", status=None, search="winter"
    ) == 2
    assert repository.count_proposals(
        user_id=SPONSOR_ID, role="SPONSOR", status=None, search="  WINTER "
    ) == 2
    assert repository.count_proposals(
        user_id=SPONSOR_ID, role="SPONSOR", status=None, search="promo about"
    ) == 0


def test_mark_messages_read_flips_only_counterparty_unread_rows():
    repository = InMemoryNegotiationRepository()
    repository.create_message(message("pmsg_1", sender_id=CREATOR_ID))
    repository.create_message(message("pmsg_2", sender_id=CREATOR_ID, is_read=True))
    repository.create_message(message("pmsg_3", sender_id=SPONSOR_ID))

    assert repository.mark_messages_read(proposal_id="prp_000000000001", viewer_id=SPONSOR_ID) == 1
    assert repository.mark_messages_read(proposal_id="prp_000000000001", viewer_id=SPONSOR_ID) == 0
    assert repository.count_unread_messages(
        proposal_id="prp_000000000001", viewer_id=CREATOR_ID
    ) == 1


def test_list_messages_newest_first():
    repository = InMemoryNegotiationRepository()
    for index in range(3):
        repository.create_message(
            message(f"pmsg_{index}", created_at=BASE_TIME + timedelta(seconds=index))
        )
    rows = repository.list_messages(proposal_id="prp_000000000001", limit=2, offset=0)
    assert [row.message_id for row in rows] == ["pmsg_2", "pmsg_1"]
    assert repository.count_messages(proposal_id="prp_000000000001") == 3
    assert repository.count_messages(proposal_id="prp_other") == 0


def test_mark_notification_read_keeps_first_read_timestamp():
    repository = InMemoryNegotiationRepository()
    repository.create_notification(notification("ntf_1"))

    first = repository.mark_notification_read(notification_id="ntf_1", read_at=BASE_TIME)
    second = repository.mark_notification_read(
        notification_id="ntf_1", read_at=BASE_TIME + timedelta(hours=1)
    )
    assert first.is_read is True
    assert second.read_at == BASE_TIME
    assert repository.mark_notification_read(notification_id="ntf_x", read_at=BASE_TIME) is None

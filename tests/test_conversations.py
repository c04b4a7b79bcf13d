import uuid

from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from conftest import API, auth_headers
from donorlink.database import engine
from donorlink.models.conversation import Conversation, make_pair_key
from donorlink.repositories.conversation_repo import ConversationRepository
from donorlink.repositories.message_repo import MessageRepository
from donorlink.repositories.user_repo import UserRepository
from donorlink.services.conversation_service import ConversationService


def _start(client, actor, target):
    return client.post(
        f"{API}/conversations",
        json={"target_user_id": str(target.id)},
        headers=auth_headers(actor),
    )


def _conversation_count() -> int:
    with Session(engine) as s:
        return len(s.exec(select(Conversation)).all())


def _store_down(*args):
    raise OperationalError("SELECT", {}, Exception("connection lost"))


def test_pair_key_is_order_independent():
    a, b = uuid.uuid4(), uuid.uuid4()
    assert make_pair_key(a, b) == make_pair_key(b, a)


class TestStartConversation:
    def test_first_contact_creates_a_conversation(self, client, make_user):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker")

        resp = _start(client, donor, seeker)

        assert resp.status_code == 201
        assert resp.json()["created"] is True
        assert _conversation_count() == 1

    def test_repeat_contact_reuses_the_conversation(self, client, make_user):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker")

        first = _start(client, donor, seeker).json()
        again = _start(client, donor, seeker)
        reverse = _start(client, seeker, donor)

        assert again.status_code == 200
        assert again.json() == {"conversation_id": first["conversation_id"], "created": False}
        assert reverse.json()["conversation_id"] == first["conversation_id"]
        assert _conversation_count() == 1

    def test_concurrent_bootstrap_keeps_one_conversation(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker")
        first = _start(client, donor, seeker).json()

        # Both callers miss the scan, as two simultaneous requests would
        monkeypatch.setattr(
            ConversationService, "_find_existing", lambda self, session, a, b: None
        )
        loser = _start(client, seeker, donor)

        assert loser.status_code == 200
        assert loser.json() == {"conversation_id": first["conversation_id"], "created": False}
        assert _conversation_count() == 1

    def test_cannot_message_yourself(self, client, make_user):
        donor = make_user(role="donor")

        resp = _start(client, donor, donor)

        assert resp.status_code == 400
        assert _conversation_count() == 0

    def test_unknown_or_incomplete_target(self, client, make_user):
        donor = make_user(role="donor")
        incomplete = make_user(role="help-seeker", complete=False)

        missing = client.post(
            f"{API}/conversations",
            json={"target_user_id": str(uuid.uuid4())},
            headers=auth_headers(donor),
        )

        assert missing.status_code == 404
        assert _start(client, donor, incomplete).status_code == 404
        assert _conversation_count() == 0

    def test_requires_complete_profile(self, client, make_user):
        newcomer = make_user(role="donor", complete=False)
        seeker = make_user(role="help-seeker")

        resp = _start(client, newcomer, seeker)

        assert resp.status_code == 403
        assert resp.headers["X-Redirect"] == "/profile/setup"


class TestReadConversations:
    def test_chat_list_shows_other_participant_and_notice(self, client, make_user):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker", name="Shelter Team")
        _start(client, donor, seeker)

        resp = client.get(f"{API}/conversations", headers=auth_headers(donor))

        assert resp.status_code == 200
        [entry] = resp.json()
        assert entry["preview"] == "No messages yet"
        assert entry["last_message"] is None
        assert entry["other_participant"]["name"] == "Shelter Team"
        assert set(entry["participants"]) == {str(donor.id), str(seeker.id)}

    def test_chat_list_is_most_recent_first(self, client, make_user):
        donor = make_user(role="donor")
        older = make_user(role="help-seeker")
        newer = make_user(role="help-seeker")
        older_id = _start(client, donor, older).json()["conversation_id"]
        newer_id = _start(client, donor, newer).json()["conversation_id"]

        client.post(
            f"{API}/conversations/{older_id}/messages",
            json={"text": "Still need volunteers?"},
            headers=auth_headers(donor),
        )
        resp = client.get(f"{API}/conversations", headers=auth_headers(donor))

        assert [c["id"] for c in resp.json()] == [older_id, newer_id]
        assert resp.json()[0]["preview"] == "Still need volunteers?"

    def test_chat_list_read_failure_is_empty(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        _start(client, donor, make_user(role="help-seeker"))

        def broken(self, session, user_id):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        monkeypatch.setattr(ConversationRepository, "list_for_participant", broken)

        resp = client.get(f"{API}/conversations", headers=auth_headers(donor))

        assert resp.status_code == 200
        assert resp.json() == []

    def test_only_participants_can_open_a_conversation(self, client, make_user):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker")
        outsider = make_user(role="donor")
        conversation_id = _start(client, donor, seeker).json()["conversation_id"]

        assert client.get(
            f"{API}/conversations/{conversation_id}", headers=auth_headers(seeker)
        ).status_code == 200
        assert client.get(
            f"{API}/conversations/{conversation_id}", headers=auth_headers(outsider)
        ).status_code == 404
        assert client.get(
            f"{API}/conversations/{uuid.uuid4()}", headers=auth_headers(donor)
        ).status_code == 404

    def test_dashboard_counts_conversations(self, client, make_user):
        donor = make_user(role="donor")
        _start(client, donor, make_user(role="help-seeker"))
        _start(client, make_user(role="help-seeker"), donor)

        resp = client.get(f"{API}/dashboard", headers=auth_headers(donor))

        assert resp.json()["conversation_count"] == 2
        assert resp.json()["search_role"] == "help-seeker"


class TestStoreReadFailures:
    def test_bootstrap_lookup_failure_creates_nothing(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker")
        monkeypatch.setattr(ConversationRepository, "list_for_participant", _store_down)

        resp = _start(client, donor, seeker)

        assert resp.status_code == 503
        assert resp.json()["detail"] == "Starting chat failed. Please try again."
        assert _conversation_count() == 0

    def test_open_conversation_read_failure(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        conversation_id = _start(client, donor, make_user(role="help-seeker")).json()[
            "conversation_id"
        ]
        monkeypatch.setattr(ConversationRepository, "get_by_id", _store_down)

        resp = client.get(f"{API}/conversations/{conversation_id}", headers=auth_headers(donor))

        assert resp.status_code == 503

    def test_header_keeps_cached_preview_when_log_is_unreadable(
        self, client, make_user, monkeypatch
    ):
        donor = make_user(role="donor")
        conversation_id = _start(client, donor, make_user(role="help-seeker")).json()[
            "conversation_id"
        ]
        client.post(
            f"{API}/conversations/{conversation_id}/messages",
            json={"text": "Blankets are on the way"},
            headers=auth_headers(donor),
        )
        monkeypatch.setattr(MessageRepository, "latest_for_conversation", _store_down)

        resp = client.get(f"{API}/conversations/{conversation_id}", headers=auth_headers(donor))

        assert resp.status_code == 200
        assert resp.json()["preview"] == "Blankets are on the way"
        assert resp.json()["other_participant"] is not None

    def test_header_without_participant_summary(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker")
        conversation_id = _start(client, donor, seeker).json()["conversation_id"]
        original = UserRepository.get_by_id

        def flaky(self, session, user_id):
            if user_id == seeker.id:
                _store_down()
            return original(self, session, user_id)

        monkeypatch.setattr(UserRepository, "get_by_id", flaky)

        resp = client.get(f"{API}/conversations/{conversation_id}", headers=auth_headers(donor))

        assert resp.status_code == 200
        assert resp.json()["id"] == conversation_id
        assert resp.json()["other_participant"] is None
        assert resp.json()["preview"] == "No messages yet"

    def test_dashboard_count_failure_shows_zero(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        _start(client, donor, make_user(role="help-seeker"))
        monkeypatch.setattr(ConversationRepository, "count_for_participant", _store_down)

        resp = client.get(f"{API}/dashboard", headers=auth_headers(donor))

        assert resp.status_code == 200
        assert resp.json()["conversation_count"] == 0
        assert resp.json()["user"]["id"] == str(donor.id)

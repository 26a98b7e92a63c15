"""Tests for the per-user JSON file store."""

from datetime import datetime, time, timezone

from bloodwork.schemas.ai import ChatMessage
from bloodwork.schemas.user import UserData
from bloodwork.services.file_store import (
    MAX_CHAT_MESSAGES,
    TOKEN_PREFIX,
    generate_token,
    hash_token,
    safe_user_id,
)
from conftest import make_entry


def _message(i: int) -> ChatMessage:
    return ChatMessage(
        id=f"m{i}",
        role="user" if i % 2 == 0 else "assistant",
        content=f"message {i}",
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class TestSafeUserId:
    def test_plain_id_unchanged(self):
        assert safe_user_id("alice@example.org") == "alice@example.org"

    def test_path_separators_replaced(self):
        assert safe_user_id("../../etc/passwd") == ".._.._etc_passwd"

    def test_dot_segments_neutralized(self):
        assert safe_user_id("..") == "__"
        assert safe_user_id(".") == "_"


class TestUserData:
    def test_missing_user_returns_empty_record(self, store):
        data = store.get_user_data("nobody")
        assert data.user_id == "nobody"
        assert data.entries == []

    def test_save_and_load(self, store):
        data = UserData(user_id="u1", display_name="Alice", gender="female")
        data.entries.append(make_entry("e1", "2026-01-10", ("Ferritin", 40.0, "ng/ml")))
        store.save_user_data(data)

        loaded = store.get_user_data("u1")
        assert loaded == data
        assert (store.data_dir / "users" / "u1" / "bloodvalues.json").exists()

    def test_corrupt_file_returns_default(self, store):
        path = store.data_dir / "users" / "u1" / "bloodvalues.json"
        path.parent.mkdir(parents=True)
        path.write_text("{", encoding="utf-8")
        assert store.get_user_data("u1").entries == []

    def test_ensure_profile_fills_missing_fields_only(self, store):
        store.save_user_data(UserData(user_id="u1", display_name="Alice"))
        data = store.ensure_user_profile("u1", "Other Name", "alice@example.org")
        assert data.display_name == "Alice"
        assert data.email == "alice@example.org"

    def test_find_user_by_email_case_insensitive(self, store):
        store.save_user_data(UserData(user_id="u1", email="Alice@Example.org"))
        store.save_user_data(UserData(user_id="u2", email="bob@example.org"))
        assert store.find_user_by_email("alice@example.ORG").user_id == "u1"
        assert store.find_user_by_email("carol@example.org") is None


class TestChatHistory:
    def test_empty_history(self, store):
        assert store.get_chat_history("u1").messages == []

    def test_append(self, store):
        store.append_chat_messages("u1", _message(0), _message(1))
        assert [m.id for m in store.get_chat_history("u1").messages] == ["m0", "m1"]

    def test_history_capped(self, store):
        store.append_chat_messages("u1", *[_message(i) for i in range(MAX_CHAT_MESSAGES + 10)])
        messages = store.get_chat_history("u1").messages
        assert len(messages) == MAX_CHAT_MESSAGES
        assert messages[0].id == "m10"


class TestRateLimit:
    def test_allows_up_to_limit(self, store):
        results = [store.check_and_increment_ai_rate("u1", 3) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_limits_are_per_user(self, store):
        store.check_and_increment_ai_rate("u1", 1)
        assert store.check_and_increment_ai_rate("u2", 1) is True

    def test_expired_window_resets(self, store):
        from bloodwork.utils.json_files import write_json

        write_json(store.data_dir / "ai_rate_limits.json", {"u1": {"count": 99, "reset_at": 0}})
        assert store.check_and_increment_ai_rate("u1", 1) is True

    def test_window_ends_at_utc_midnight(self, store):
        from bloodwork.utils.json_files import read_json

        store.check_and_increment_ai_rate("u1", 5)
        today = datetime.now(timezone.utc).date()
        end_of_day = datetime.combine(today, time.max, tzinfo=timezone.utc)
        records = read_json(store.data_dir / "ai_rate_limits.json", {})
        assert records["u1"]["reset_at"] == end_of_day.timestamp()


class TestTokens:
    def test_generated_token_format(self):
        token = generate_token()
        assert token.startswith(TOKEN_PREFIX)
        assert len(token) == len(TOKEN_PREFIX) + 64

    def test_issue_and_resolve(self, store):
        token, secret = store.issue_api_token("u1", "laptop")
        assert store.resolve_token(secret) == "u1"
        assert token.token_hash == hash_token(secret)
        assert secret not in (store.data_dir / "api_tokens.json").read_text(encoding="utf-8")
        assert store.get_user_data("u1").api_tokens == [token]

    def test_revoke(self, store):
        token, secret = store.issue_api_token("u1", "laptop")
        store.revoke_token(token.token_hash)
        assert store.resolve_token(secret) is None

    def test_unknown_token(self, store):
        assert store.resolve_token("bt_unknown") is None

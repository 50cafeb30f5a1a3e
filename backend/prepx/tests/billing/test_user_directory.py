"""Tests for billing identifier to user id resolution."""

from prepx.billing.users import UserDirectory, is_uuid

UUID = "7D9F3C2A-1B4E-4C8D-9A6F-2E5B7C1D0F3A"


class TestIsUuid:

    def test_uuid_shapes(self):
        assert is_uuid(UUID)
        assert is_uuid(UUID.lower())
        assert not is_uuid("aspirant@example.com")
        assert not is_uuid("$RCAnonymousID:7d9f3c2a")
        assert not is_uuid("")


class TestUserDirectory:

    def test_uuid_candidate_used_directly(self, db_session):
        assert UserDirectory(db_session).resolve([UUID]) == UUID.lower()

    def test_email_resolved_case_insensitively(self, db_session, make_user):
        user = make_user(email="Aspirant@Example.com")

        resolved = UserDirectory(db_session).resolve(["aspirant@example.COM"])

        assert resolved == user.id

    def test_falls_through_to_later_candidates(self, db_session, make_user):
        user = make_user(email="alias@example.com")

        resolved = UserDirectory(db_session).resolve([
            "$RCAnonymousID:abc",
            "unknown@example.com",
            "alias@example.com",
        ])

        assert resolved == user.id

    def test_no_match_returns_none(self, db_session):
        assert UserDirectory(db_session).resolve(["nobody@example.com", "anon"]) is None
        assert UserDirectory(db_session).resolve([]) is None

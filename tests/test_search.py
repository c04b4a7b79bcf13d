from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from conftest import API, auth_headers
from donorlink.repositories.user_repo import UserRepository
from donorlink.services.search_service import filter_profiles


def _profile(location, causes):
    return SimpleNamespace(location=location, causes=causes)


class TestFilterProfiles:
    def test_location_is_case_insensitive_substring(self):
        springfield = _profile("Springfield, IL", ["food"])
        portland = _profile("Portland, OR", ["food"])

        assert filter_profiles([springfield, portland], location="Spring") == [springfield]
        assert filter_profiles([springfield, portland], location="spring") == [springfield]

    def test_blank_location_keeps_everything(self):
        profiles = [_profile("Springfield, IL", []), _profile(None, [])]

        assert filter_profiles(profiles, location="   ") == profiles
        assert filter_profiles(profiles, location=None) == profiles

    def test_missing_location_never_matches_a_filter(self):
        assert filter_profiles([_profile(None, ["food"])], location="Spring") == []

    def test_cause_membership(self):
        tutor = _profile("A", ["education", "children"])
        kitchen = _profile("B", ["food"])

        assert filter_profiles([tutor, kitchen], cause="education") == [tutor]
        assert filter_profiles([tutor, kitchen], cause="all") == [tutor, kitchen]

    def test_filters_combine(self):
        match = _profile("Springfield, IL", ["education"])
        wrong_cause = _profile("Springfield, IL", ["food"])
        wrong_place = _profile("Portland, OR", ["education"])

        results = filter_profiles(
            [match, wrong_cause, wrong_place], location="spring", cause="education"
        )
        assert results == [match]


class TestSearchEndpoint:
    def test_returns_only_complete_opposite_role_profiles(self, client, make_user):
        donor = make_user(role="donor")
        seeker = make_user(role="help-seeker", name="Seeker")
        make_user(role="help-seeker", complete=False)
        make_user(role="donor", name="Other Donor")

        resp = client.get(f"{API}/search", headers=auth_headers(donor))

        assert resp.status_code == 200
        body = resp.json()
        assert body["search_role"] == "help-seeker"
        assert body["total"] == 1
        assert [r["id"] for r in body["results"]] == [str(seeker.id)]
        assert "email" not in body["results"][0]

    def test_incomplete_profiles_never_match_any_filter(self, client, make_user):
        donor = make_user(role="donor")
        make_user(role="help-seeker", complete=False)

        for params in (
            {},
            {"location": "Spring"},
            {"cause": "food"},
            {"location": "Spring", "cause": "food"},
        ):
            resp = client.get(f"{API}/search", params=params, headers=auth_headers(donor))
            assert resp.json()["total"] == 0

    def test_location_filter(self, client, make_user):
        seeker = make_user(role="help-seeker")
        springfield = make_user(role="donor", location="Springfield, IL")
        make_user(role="donor", location="Portland, OR")

        resp = client.get(
            f"{API}/search", params={"location": "Spring"}, headers=auth_headers(seeker)
        )

        assert [r["id"] for r in resp.json()["results"]] == [str(springfield.id)]

    def test_cause_filter_and_all(self, client, make_user):
        donor = make_user(role="donor")
        education = make_user(role="help-seeker", causes=["education", "children"])
        food = make_user(role="help-seeker", causes=["food"])

        resp = client.get(
            f"{API}/search", params={"cause": "education"}, headers=auth_headers(donor)
        )
        assert [r["id"] for r in resp.json()["results"]] == [str(education.id)]

        resp = client.get(f"{API}/search", params={"cause": "all"}, headers=auth_headers(donor))
        ids = {r["id"] for r in resp.json()["results"]}
        assert ids == {str(education.id), str(food.id)}

    def test_empty_result_is_not_an_error(self, client, make_user):
        donor = make_user(role="donor")

        resp = client.get(f"{API}/search", headers=auth_headers(donor))

        assert resp.status_code == 200
        assert resp.json() == {"search_role": "help-seeker", "total": 0, "results": []}

    def test_unknown_cause_is_rejected(self, client, make_user):
        donor = make_user(role="donor")

        resp = client.get(
            f"{API}/search", params={"cause": "space-travel"}, headers=auth_headers(donor)
        )

        assert resp.status_code == 422

    def test_read_failure_degrades_to_empty(self, client, make_user, monkeypatch):
        donor = make_user(role="donor")
        make_user(role="help-seeker")

        def broken(self, session, role):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        monkeypatch.setattr(UserRepository, "list_complete_by_role", broken)

        resp = client.get(f"{API}/search", headers=auth_headers(donor))

        assert resp.status_code == 200
        assert resp.json()["total"] == 0

    def test_requires_complete_profile(self, client, make_user):
        newcomer = make_user(role="donor", complete=False)

        resp = client.get(f"{API}/search", headers=auth_headers(newcomer))

        assert resp.status_code == 403
        assert resp.headers["X-Redirect"] == "/profile/setup"

    def test_requires_authentication(self, client):
        assert client.get(f"{API}/search").status_code == 401

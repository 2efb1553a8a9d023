"""Tests for credential matching and the settings file."""

import json

import pytest

from gitshell.credentials import GitCredential, find_credentials_for_repo
from gitshell.settings import GitSettings


def cred(host, username="", protocol="https"):
    return GitCredential(protocol=protocol, host=host, username=username, password="pw")


class TestFindCredentials:
    def test_host_match(self):
        c = cred("github.com")
        assert find_credentials_for_repo("https://github.com/me/repo.git", [c]) is c

    def test_host_is_case_insensitive(self):
        c = cred("GitHub.com")
        assert find_credentials_for_repo("https://github.COM/me/r.git", [c]) is c

    def test_protocol_must_match(self):
        assert find_credentials_for_repo("http://github.com/r.git", [cred("github.com")]) is None

    @pytest.mark.parametrize("host, url, expected", [
        ("example.com", "https://example.com:443/r.git", True),
        ("example.com:443", "https://example.com/r.git", True),
        ("example.com:8443", "https://example.com:8443/r.git", True),
        ("example.com:8443", "https://example.com/r.git", False),
        ("example.com", "https://example.com:8443/r.git", False),
    ])
    def test_port(self, host, url, expected):
        c = cred(host)
        assert (find_credentials_for_repo(url, [c]) is c) is expected

    def test_url_user_prefers_matching_username(self):
        anon, alice, bob = cred("h.io"), cred("h.io", "alice"), cred("h.io", "bob")
        assert find_credentials_for_repo("https://bob@h.io/r.git", [anon, alice, bob]) is bob

    def test_url_user_falls_back_to_anonymous(self):
        anon, alice = cred("h.io"), cred("h.io", "alice")
        assert find_credentials_for_repo("https://carol@h.io/r.git", [alice, anon]) is anon

    def test_url_user_never_matches_other_user(self):
        assert find_credentials_for_repo("https://carol@h.io/r.git", [cred("h.io", "alice")]) is None

    def test_no_user_takes_first_match(self):
        alice, bob = cred("h.io", "alice"), cred("h.io", "bob")
        assert find_credentials_for_repo("https://h.io/r.git", [alice, bob]) is alice

    @pytest.mark.parametrize("url", ["/local/path", "not a url", "https://h.io:notaport/r"])
    def test_unusable_urls(self, url):
        assert find_credentials_for_repo(url, [cred("h.io")]) is None

    def test_round_trip_dict(self):
        c = GitCredential("https", "h.io", "me", "secret")
        assert GitCredential.from_dict(c.to_dict()) == c


class TestSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = GitSettings.load(str(tmp_path / "none.json"))
        assert settings.credentials == []
        assert settings.identity is None

    def test_save_and_load(self, tmp_path):
        path = str(tmp_path / "cfg" / "git.json")
        GitSettings(
            credentials=[GitCredential("https", "h.io", "me", "pw")],
            name="Me", email="me@h.io", co_author="Pair <p@h.io>",
        ).save(path)
        loaded = GitSettings.load(path)
        assert loaded.identity == "Me <me@h.io>"
        assert loaded.co_author == "Pair <p@h.io>"
        assert loaded.on_auth("https://h.io/r.git").password == "pw"

    def test_malformed_file_gives_defaults(self, tmp_path, caplog):
        path = tmp_path / "git.json"
        path.write_text("{not json")
        assert GitSettings.load(str(path)).credentials == []
        assert "ignoring unreadable settings file" in caplog.text

    def test_non_object_gives_defaults(self, tmp_path):
        path = tmp_path / "git.json"
        path.write_text(json.dumps(["x"]))
        assert GitSettings.load(str(path)).name is None

    def test_identity_needs_both_parts(self):
        assert GitSettings(name="Only Name").identity is None

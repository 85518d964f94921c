# This file is part of ds-identify. See LICENSE file for license information.

import pytest

from dsidentify import policy
from dsidentify.errors import PolicyError
from dsidentify.policy import Mode, Policy, default_policy, parse_policy


class TestParsePolicy:
    def test_full_policy(self):
        found = parse_policy("report,found=first,maybe=none,notfound=enabled")
        assert Policy(Mode.REPORT, "first", "none", "enabled") == found

    def test_str_round_trips(self):
        text = "search,found=all,maybe=all,notfound=disabled"
        assert text == str(parse_policy(text))

    def test_missing_settings_come_from_default(self):
        base = Policy(Mode.SEARCH, "all", "none", "enabled")
        found = parse_policy("found=first", base)
        assert Policy(Mode.SEARCH, "first", "none", "enabled") == found

    def test_mode_only(self):
        assert Mode.DISABLED == parse_policy("disabled").mode

    def test_empty_tokens_ignored(self):
        assert Policy() == parse_policy(" , ,")

    @pytest.mark.parametrize(
        "text,expected_msg",
        [
            ("bogus", "unknown policy token 'bogus'"),
            ("found=some", "invalid value 'some' for 'found'"),
            ("color=red", "unknown policy token 'color=red'"),
        ],
    )
    def test_invalid_tokens_are_logged_and_ignored(
        self, text, expected_msg, caplog
    ):
        assert Policy() == parse_policy(text)
        assert expected_msg in caplog.text
        assert "Invalid policy '%s'" % text in caplog.text

    def test_invalid_token_keeps_valid_siblings(self):
        found = parse_policy("report,maybe=sometimes,notfound=enabled")
        assert Policy(Mode.REPORT, "all", "all", "enabled") == found

    def test_parse_token_raises_policy_error(self):
        with pytest.raises(PolicyError, match="invalid value 'x'"):
            policy._parse_token("notfound=x")


class TestDefaultPolicy:
    @pytest.mark.parametrize("machine", ["x86_64", "amd64", "i686", "i386"])
    def test_x86_has_dmi(self, machine):
        assert "disabled" == default_policy(machine).on_notfound

    @pytest.mark.parametrize("machine", ["aarch64", "ppc64le", "s390x"])
    def test_non_x86_has_no_dmi(self, machine):
        assert "enabled" == default_policy(machine).on_notfound

    def test_env_overrides_builtin(self):
        env = {"DI_DEFAULT_POLICY": "report,notfound=enabled"}
        found = default_policy("x86_64", env)
        assert Policy(Mode.REPORT, "all", "all", "enabled") == found

    def test_no_dmi_env_only_used_without_dmi(self):
        env = {"DI_DEFAULT_POLICY_NO_DMI": "disabled"}
        assert Mode.SEARCH == default_policy("x86_64", env).mode
        assert Mode.DISABLED == default_policy("aarch64", env).mode


class TestSelectPolicy:
    def test_default(self):
        found, source = policy.select_policy({}, None, "x86_64", {})
        assert "default" == source
        assert default_policy("x86_64") == found

    def test_config_wins_over_default(self):
        found, source = policy.select_policy(
            {}, "found=first", "x86_64", {}
        )
        assert "etc/cloud/ds-identify.cfg" == source
        assert "first" == found.on_found

    def test_cmdline_wins_over_config(self):
        found, source = policy.select_policy(
            {"ci.di.policy": "disabled"}, "enabled", "x86_64", {}
        )
        assert "kernel command line" == source
        assert Mode.DISABLED == found.mode

    def test_partial_cmdline_policy_keeps_platform_defaults(self):
        found, _source = policy.select_policy(
            {"ci.di.policy": "maybe=none"}, None, "aarch64", {}
        )
        assert Policy(Mode.SEARCH, "all", "none", "enabled") == found

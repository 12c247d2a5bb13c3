"""Tests for allow-lists and the filter chain."""

import pytest

from deployhook.config import HookConfig
from deployhook.errors import ConfigurationError
from deployhook.hooks.filters import (
    AnyOf,
    BranchFilter,
    Exact,
    FilterChain,
    IpFilter,
    Network,
    Predicate,
    TokenFilter,
    Wildcard,
    build_allow_list,
    build_filter_chain,
)
from deployhook.hooks.models import HookRequest


def push_body(ref="refs/heads/production"):
    return {
        "ref": ref,
        "before": "95790bf891e76fee5e1747ab589903a6a1f80f22",
        "after": "da1560886d4f094c3e6c9ef40349f7d38b5d27d7",
        "repository": {"name": "app"},
    }


def make_request(remote="127.0.0.1", token=None, ref="refs/heads/production", headers=None):
    params = {} if token is None else {"token": token}
    return HookRequest(body=push_body(ref), remote=remote, params=params, headers=headers or {})


# ---------------------------------------------------------------------------
# Allow-list construction
# ---------------------------------------------------------------------------

class TestBuildAllowList:
    @pytest.mark.parametrize("value", [None, False, "", [], [""], [None]])
    def test_disabled(self, value):
        assert build_allow_list(value) is None

    def test_literal(self):
        assert build_allow_list("production") == Exact("production")

    def test_list(self):
        assert build_allow_list(["a", "b"]) == AnyOf(("a", "b"))

    def test_wildcard_literal(self):
        assert isinstance(build_allow_list("*"), Wildcard)

    def test_wildcard_in_list(self):
        assert isinstance(build_allow_list(["main", "*"]), Wildcard)

    def test_true_means_any(self):
        assert isinstance(build_allow_list(True), Wildcard)

    def test_callable(self):
        allow = build_allow_list(lambda v: v == "x")
        assert isinstance(allow, Predicate)
        assert allow.matches("x")
        assert not allow.matches("y")

    def test_number_compared_as_string(self):
        allow = build_allow_list(12345)
        assert allow == Exact("12345")
        assert allow.matches("12345")

    def test_numbers_in_list(self):
        assert build_allow_list([1, "two"]) == AnyOf(("1", "two"))

    def test_addresses_become_networks(self):
        allow = build_allow_list(["127.0.0.1", "10.0.0.0/8"], networks=True)
        assert isinstance(allow, Network)

    def test_hostnames_stay_literal(self):
        allow = build_allow_list(["localhost"], networks=True)
        assert allow == AnyOf(("localhost",))


class TestMatching:
    def test_exact(self):
        allow = Exact("keyboard cat")
        assert allow.matches("keyboard cat")
        assert not allow.matches("Keyboard Cat")
        assert not allow.matches(None)

    def test_any_of(self):
        allow = AnyOf(("main", "production"))
        assert allow.matches("production")
        assert not allow.matches("staging")
        assert not allow.matches(None)

    def test_lone_surrogate_does_not_match(self):
        assert not Exact("keyboard cat").matches("\ud800")
        assert not AnyOf(("main", "production")).matches("\ud800")

    def test_raising_predicate_does_not_match(self):
        def broken(value):
            raise KeyError(value)

        assert not Predicate(broken).matches("main")

    def test_wildcard(self):
        assert Wildcard().matches(None)
        assert Wildcard().matches("anything")

    def test_network_cidr(self):
        allow = build_allow_list(["10.0.0.0/8"], networks=True)
        assert allow.matches("10.20.30.40")
        assert not allow.matches("192.168.1.1")

    def test_network_single_address(self):
        allow = build_allow_list("127.0.0.1", networks=True)
        assert allow.matches("127.0.0.1")
        assert not allow.matches("127.0.0.2")

    def test_network_ipv4_mapped_ipv6(self):
        allow = build_allow_list("127.0.0.1", networks=True)
        assert allow.matches("::ffff:127.0.0.1")

    def test_network_garbage_address(self):
        allow = build_allow_list("127.0.0.1", networks=True)
        assert not allow.matches("not-an-ip")
        assert not allow.matches(None)


# ---------------------------------------------------------------------------
# Individual filters
# ---------------------------------------------------------------------------

class TestIpFilter:
    def test_pass(self):
        f = IpFilter(build_allow_list(["127.0.0.1"], networks=True))
        assert f.check(make_request()) is None

    def test_fail_is_404(self):
        f = IpFilter(build_allow_list(["127.0.0.1"], networks=True))
        rejection = f.check(make_request(remote="203.0.113.9"))
        assert rejection.filter == "ip"
        assert rejection.status == 404
        assert rejection.value == "203.0.113.9"

    def test_wildcard(self):
        f = IpFilter(Wildcard())
        assert f.check(make_request(remote="203.0.113.9")) is None


class TestTokenFilter:
    def test_matching_token(self):
        f = TokenFilter(Exact("keyboard cat"))
        assert f.check(make_request(token="keyboard cat")) is None

    @pytest.mark.parametrize("token", ["Keyboard Cat", "keyboard", "", None])
    def test_other_values_fail_with_404(self, token):
        f = TokenFilter(Exact("keyboard cat"))
        rejection = f.check(make_request(token=token))
        assert rejection is not None
        assert rejection.status == 404

    def test_custom_token_key(self):
        f = TokenFilter(Exact("s3cret"), token_key="secret")
        request = HookRequest(body={}, params={"secret": "s3cret"})
        assert f.check(request) is None

    def test_header_fallback(self):
        f = TokenFilter(Exact("s3cret"), header="X-Gitlab-Token")
        request = make_request(headers={"X-Gitlab-Token": "s3cret"})
        assert f.check(request) is None

    def test_param_takes_precedence_over_header(self):
        f = TokenFilter(Exact("s3cret"), header="X-Gitlab-Token")
        request = make_request(token="wrong", headers={"X-Gitlab-Token": "s3cret"})
        assert f.check(request) is not None

    def test_any_of_tokens(self):
        f = TokenFilter(AnyOf(("old", "new")))
        assert f.check(make_request(token="old")) is None
        assert f.check(make_request(token="new")) is None


class TestBranchFilter:
    def test_short_name_matches(self):
        f = BranchFilter(build_allow_list(["production"]))
        assert f.check(make_request(ref="refs/heads/production")) is None

    def test_full_ref_in_config_does_not_match(self):
        f = BranchFilter(build_allow_list(["refs/heads/production"]))
        rejection = f.check(make_request(ref="refs/heads/production"))
        assert rejection is not None
        assert rejection.status == 403
        assert rejection.value == "production"

    def test_other_branch_is_403(self):
        f = BranchFilter(build_allow_list(["production"]))
        rejection = f.check(make_request(ref="refs/heads/staging"))
        assert rejection.filter == "branch"
        assert rejection.status == 403

    def test_tags_match_by_name(self):
        f = BranchFilter(build_allow_list("v1.0"))
        assert f.check(make_request(ref="refs/tags/v1.0")) is None

    def test_wildcard_passes_all(self):
        f = BranchFilter(build_allow_list("*"))
        assert f.check(make_request(ref="refs/heads/anything")) is None

    def test_raw_ref_compares_full_ref(self):
        f = BranchFilter(build_allow_list(["refs/heads/production"]), raw_ref=True)
        assert f.check(make_request(ref="refs/heads/production")) is None
        rejection = f.check(make_request(ref="refs/heads/staging"))
        assert rejection.value == "refs/heads/staging"

    def test_non_push_has_no_ref(self):
        f = BranchFilter(build_allow_list(["production"]))
        request = HookRequest(body={"object_kind": "issue", "object_attributes": {}})
        assert f.check(request).status == 403


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

class TestFilterChain:
    def test_all_pass(self):
        chain = build_filter_chain(
            HookConfig(ips=["127.0.0.1"], token="keyboard cat", branches=["production"])
        )
        assert chain.evaluate(make_request(token="keyboard cat")) is None

    def test_order_is_ip_token_branch(self):
        chain = build_filter_chain(HookConfig(token="t", branches="main"))
        assert [type(f) for f in chain.filters] == [IpFilter, TokenFilter, BranchFilter]

    def test_default_ips_is_localhost(self):
        chain = build_filter_chain(HookConfig())
        assert len(chain) == 1
        assert chain.evaluate(make_request(remote="127.0.0.1")) is None
        assert chain.evaluate(make_request(remote="10.1.1.1")).filter == "ip"

    def test_short_circuits_on_first_failure(self):
        branch_calls = []

        def branch_allowed(ref):
            branch_calls.append(ref)
            return True

        chain = build_filter_chain(
            HookConfig(ips=lambda ip: False, token="t", branches=branch_allowed)
        )
        rejection = chain.evaluate(make_request(token="t"))
        assert rejection.filter == "ip"
        assert branch_calls == []

    @pytest.mark.parametrize(
        "request_kwargs, failed",
        [
            ({"remote": "10.9.9.9", "token": "t", "ref": "refs/heads/production"}, "ip"),
            ({"remote": "127.0.0.1", "token": "x", "ref": "refs/heads/production"}, "token"),
            ({"remote": "127.0.0.1", "token": "t", "ref": "refs/heads/dev"}, "branch"),
        ],
    )
    def test_any_single_failure_rejects(self, request_kwargs, failed):
        config = HookConfig(ips="127.0.0.1", token="t", branches="production")
        rejection = build_filter_chain(config).evaluate(make_request(**request_kwargs))
        assert rejection.filter == failed

    def test_rejection_regardless_of_order(self):
        request = make_request(remote="127.0.0.1", token="t", ref="refs/heads/dev")
        filters = [
            IpFilter(build_allow_list("127.0.0.1", networks=True)),
            TokenFilter(Exact("t")),
            BranchFilter(Exact("production")),
        ]
        assert FilterChain(filters).evaluate(request) is not None
        assert FilterChain(list(reversed(filters))).evaluate(request) is not None

    def test_no_filters_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_filter_chain(HookConfig(ips=None))

    def test_all_disabled_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            build_filter_chain(HookConfig(ips=[], token="", branches=False))

"""Tests for the pure route decision function."""

import pytest

from clixen_api.middleware.route_guard import (
    decide_route,
    is_protected_path,
    needs_identity,
)


@pytest.mark.parametrize("path", ["/dashboard", "/profile", "/bot-access", "/subscription"])
def test_anonymous_on_protected_page_redirects_to_landing(path):
    decision = decide_route(path, authenticated=False, query_params={})
    assert decision.action == "redirect"
    assert decision.location == "/?auth=true&redirect=" + path.replace("/", "%2F")
    assert decision.reason == "anonymous_on_protected"


def test_redirect_preserves_nested_path():
    decision = decide_route("/dashboard/settings", authenticated=False, query_params={})
    assert decision.location == "/?auth=true&redirect=%2Fdashboard%2Fsettings"


def test_authenticated_on_protected_page_allowed():
    assert decide_route("/dashboard", authenticated=True, query_params={}).action == "allow"


def test_authenticated_on_landing_redirects_to_dashboard():
    decision = decide_route("/", authenticated=True, query_params={})
    assert decision.action == "redirect"
    assert decision.location == "/dashboard"


@pytest.mark.parametrize("param", ["auth", "redirect", "error", "code"])
def test_landing_override_params_keep_user_on_landing(param):
    decision = decide_route("/", authenticated=True, query_params={param: "x"})
    assert decision.action == "allow"


def test_unrelated_query_param_still_redirects():
    decision = decide_route("/", authenticated=True, query_params={"utm_source": "mail"})
    assert decision.action == "redirect"


def test_anonymous_on_landing_allowed():
    assert decide_route("/", authenticated=False, query_params={}).action == "allow"


@pytest.mark.parametrize("path", ["/auth/callback", "/auth/dashboard", "/api/me", "/health"])
def test_other_paths_pass_through(path):
    assert decide_route(path, authenticated=False, query_params={}).action == "allow"
    assert decide_route(path, authenticated=True, query_params={}).action == "allow"


def test_protected_prefix_is_segment_aware():
    assert is_protected_path("/profile")
    assert is_protected_path("/profile/edit")
    assert not is_protected_path("/profiles")
    assert not is_protected_path("/dashboards")


def test_needs_identity_only_for_guarded_pages():
    assert needs_identity("/")
    assert needs_identity("/bot-access")
    assert not needs_identity("/auth/callback")
    assert not needs_identity("/api/usage/consume")
    assert not needs_identity("/internal/perf")

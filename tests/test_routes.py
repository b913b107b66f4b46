"""Tests for the routing rule model and canonical strings."""

from __future__ import annotations

from datetime import datetime

import pytest

from mailbridge.routes import DEFAULT_PRIORITY
from mailbridge.routes import RoutingRule
from mailbridge.routes import canonical_action
from mailbridge.routes import canonical_expression
from mailbridge.routes import is_valid_email
from mailbridge.routes import normalize_alias


class TestCanonicalStrings:
    def test_expression_format(self):
        assert canonical_expression("jdoe", "mg.example.org") == 'match_recipient("jdoe@mg.example.org")'

    def test_expression_is_deterministic(self):
        assert canonical_expression("a.b", "d.example") == canonical_expression("a.b", "d.example")

    def test_expression_distinct_per_alias(self):
        aliases = ["x", "y", "x.y", "xy", "x-y"]
        expressions = {canonical_expression(a, "d.example") for a in aliases}
        assert len(expressions) == len(aliases)

    def test_action_format(self):
        assert canonical_action("me@home.example") == 'forward("me@home.example")'


class TestRoutingRule:
    def test_for_identity(self):
        rule = RoutingRule.for_identity("p:", "U1", "jdoe", "jdoe@external.example", "mg.example.org")
        assert rule.description == "p:U1"
        assert rule.expression == 'match_recipient("jdoe@mg.example.org")'
        assert rule.actions == ('forward("jdoe@external.example")',)
        assert rule.priority == DEFAULT_PRIORITY
        assert rule.id == ""

    def test_owner(self):
        rule = RoutingRule(description="p:U1", expression="x")
        assert rule.owner("p:") == "U1"
        assert rule.owner("other:") is None

    def test_destination(self):
        rule = RoutingRule(description="d", expression="e", actions=("stop()", 'forward("a@b.example")'))
        assert rule.destination == "a@b.example"

    def test_destination_missing(self):
        rule = RoutingRule(description="d", expression="e", actions=("stop()",))
        assert rule.destination is None

    def test_from_api(self):
        rule = RoutingRule.from_api(
            {
                "id": "4f3bad2335335426750048c6",
                "priority": 1337,
                "description": "p:U1",
                "expression": 'match_recipient("jdoe@mg.example.org")',
                "actions": ['forward("jdoe@external.example")'],
                "created_at": "Wed, 15 Feb 2012 13:03:31 GMT",
            }
        )
        assert rule.id == "4f3bad2335335426750048c6"
        assert rule.priority == 1337
        assert rule.destination == "jdoe@external.example"
        assert isinstance(rule.created_at, datetime)
        assert rule.created_at.year == 2012

    def test_from_api_tolerates_bad_date(self):
        rule = RoutingRule.from_api({"id": "1", "description": "d", "expression": "e", "created_at": "yesterday"})
        assert rule.created_at is None
        assert rule.actions == ()

    def test_to_form_repeats_actions(self):
        rule = RoutingRule(description="d", expression="e", actions=("a1", "a2"), priority=5)
        form = rule.to_form()
        assert form["priority"] == "5"
        assert form["action"] == ["a1", "a2"]


class TestValidation:
    @pytest.mark.parametrize("address", ["email@example.org", "first.last+tag@sub.example.co", "a@b"])
    def test_valid_emails(self, address):
        assert is_valid_email(address)

    @pytest.mark.parametrize("address", ["", "no-at-sign", "a@", "@b.example", 'quo"te@b.example', "a@-b.example"])
    def test_invalid_emails(self, address):
        assert not is_valid_email(address)

    def test_normalize_alias_lowercases(self):
        assert normalize_alias("  First.Last ") == "first.last"

    @pytest.mark.parametrize("alias", ["", "has space", 'quo"te', "a@b"])
    def test_normalize_alias_rejects(self, alias):
        with pytest.raises(ValueError):
            normalize_alias(alias)

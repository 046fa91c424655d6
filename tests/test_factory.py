from dataclasses import fields as dc_fields
from datetime import UTC, datetime, timedelta

import pytest

from jira_actions.core.config import TRACKED_FIELDS
from jira_actions.core.custom_fields import CustomFieldApiParser
from jira_actions.core.errors import CustomFieldParseError, UserLookupError
from jira_actions.core.factory import TRACKED_FIELD_RULES, ActionFactory, time_diff
from jira_actions.core.models import (
    INVALID_USER,
    Action,
    ChangeItem,
    Comment,
    CustomFieldDefinition,
    History,
    Issue,
    User,
)

T0 = datetime(2024, 9, 1, 10, 0, tzinfo=UTC)
ALICE = User(key="alice-key", display_name="Alice", name="alice")
BOB = User(key="bob-key", display_name="Bob", name="bob")
CAROL = User(key="carol-key", display_name="Carol", name="carol")


class FakeUsers:
    def __init__(self, *users, failing=()):
        self.users = {u.key: u for u in users}
        self.failing = set(failing)
        self.calls = []

    def get_user(self, key):
        self.calls.append(key)
        if key in self.failing:
            raise UserLookupError(f"lookup backend down for {key}")
        if not key:
            return INVALID_USER
        return self.users.get(key, INVALID_USER)


def _ts(seconds):
    return T0 + timedelta(seconds=seconds)


def _fields(**overrides):
    values = {name: "" for name in TRACKED_FIELDS}
    values.update(overrides)
    return values


def _change(field, old, new, old_key=None, new_key=None):
    return ChangeItem(field=field, from_value=old_key, from_string=old, to_value=new_key, to_string=new)


def _issue(histories=(), comments=(), creator=ALICE, **field_overrides):
    return Issue(
        key="OBS-1",
        created=T0,
        creator=creator,
        fields=_fields(status="Open", assignee="Alice", reporter="Carol", summary="Dome stuck", **field_overrides),
        field_keys={"assignee": "alice-key", "reporter": "carol-key"},
        histories=list(histories),
        comments=list(comments),
    )


def _factory(users=None, custom_fields=()):
    return ActionFactory(users or FakeUsers(ALICE, BOB, CAROL), CustomFieldApiParser(), custom_fields)


def test_create_action_defaults():
    action = _factory().create(_issue())
    assert action.action == "create"
    assert action.fields_changed == "created"
    assert action.prev_status == ""
    assert (action.issue_age, action.time_in_state, action.time_since_action) == (0, 0, 0)
    assert action.timestamp == T0
    assert action.actor == "Alice" and action.actor_username == "alice"
    assert action.assignee == "Alice" and action.assignee_username == "alice"
    assert action.reporter == "Carol" and action.reporter_username == "carol"
    assert action.status == "Open"
    assert action.summary == "Dome stuck"


def test_create_without_creator_uses_invalid_user():
    action = _factory().create(_issue(creator=None))
    assert action.actor == INVALID_USER.display_name
    assert action.actor_username == INVALID_USER.name


def test_create_prefers_first_history_value_over_current_state():
    histories = [
        History(author=BOB, created=_ts(10), items=[_change("summary", "First title", "Second title")]),
        History(author=BOB, created=_ts(20), items=[_change("summary", "Second title", "Dome stuck")]),
    ]
    action = _factory().create(_issue(histories=histories))
    assert action.summary == "First title"
    # never-changed fields fall back to present state
    assert action.status == "Open"


def test_status_then_assignee_scenario():
    histories = [
        History(author=ALICE, created=_ts(100), items=[_change("status", "Open", "InProgress")]),
        History(
            author=ALICE,
            created=_ts(500),
            items=[_change("assignee", "Alice", "Bob", "alice-key", "bob-key")],
        ),
    ]
    factory = _factory()
    a0 = factory.create(_issue(histories=histories))
    a1 = factory.update(a0, histories[0])
    a2 = factory.update(a1, histories[1])

    assert (a0.action, a0.status, a0.time_in_state, a0.issue_age) == ("create", "Open", 0, 0)

    assert a1.action == "update"
    assert a1.status == "InProgress"
    assert a1.prev_status == "Open"
    assert (a1.time_since_action, a1.issue_age, a1.time_in_state) == (100, 100, 100)

    assert a2.status == "InProgress"
    assert a2.prev_status == "InProgress"
    assert a2.assignee == "Bob" and a2.assignee_username == "bob"
    assert a2.time_since_action == 400
    assert a2.issue_age == 500
    # a1 entered a new status, so the clock restarts at a2
    assert a2.time_in_state == 400


def test_time_in_state_accumulates_while_status_unchanged():
    factory = _factory()
    a0 = factory.create(_issue())
    a1 = factory.update(a0, History(author=BOB, created=_ts(60), items=[_change("summary", "x", "y")]))
    a2 = factory.update(a1, History(author=BOB, created=_ts(90), items=[_change("labels", "", "night")]))
    a3 = factory.update(a2, History(author=BOB, created=_ts(150), items=[_change("labels", "night", "")]))
    # create has prev_status "" != "Open": reset at a1
    assert a1.time_in_state == 60
    assert a2.time_in_state == 90
    assert a3.time_in_state == 150
    assert a3.issue_age == 150


def test_update_carries_forward_untouched_fields():
    factory = _factory()
    a0 = factory.create(_issue(labels="night", components="Dome|Mount", duedate="2024-10-01"))
    a1 = factory.update(a0, History(author=BOB, created=_ts(30), items=[_change("resolution", "", "Fixed")]))
    assert a1.resolution == "Fixed"
    assert a1.fields_changed == "resolution"
    for rule in TRACKED_FIELD_RULES:
        if rule.field == "resolution":
            continue
        assert getattr(a1, rule.attr) == getattr(a0, rule.attr)
        if rule.username_attr:
            assert getattr(a1, rule.username_attr) == getattr(a0, rule.username_attr)


def test_actor_comes_from_event_not_previous_action():
    factory = _factory()
    a0 = factory.create(_issue())
    a1 = factory.update(a0, History(author=BOB, created=_ts(5), items=[_change("summary", "a", "b")]))
    a2 = factory.update(a1, History(author=None, created=_ts(6), items=[_change("summary", "b", "c")]))
    assert (a1.actor, a1.actor_username) == ("Bob", "bob")
    assert (a2.actor, a2.actor_username) == (INVALID_USER.display_name, INVALID_USER.name)


def test_reporter_name_and_username_change_together():
    users = FakeUsers(ALICE, BOB, CAROL)
    factory = _factory(users)
    a0 = factory.create(_issue())
    history = History(author=BOB, created=_ts(5), items=[_change("reporter", "Carol", "Bob", "carol-key", "bob-key")])
    a1 = factory.update(a0, history)
    assert (a1.reporter, a1.reporter_username) == ("Bob", "bob")
    assert (a1.assignee, a1.assignee_username) == (a0.assignee, a0.assignee_username)
    assert users.calls[-1] == "bob-key"


def test_unassigning_resolves_to_invalid_username():
    factory = _factory()
    a0 = factory.create(_issue())
    a1 = factory.update(
        a0, History(author=BOB, created=_ts(5), items=[_change("assignee", "Alice", None, "alice-key", None)])
    )
    assert a1.assignee == ""
    assert a1.assignee_username == INVALID_USER.name


def test_due_date_time_suffix_is_stripped_on_change():
    factory = _factory()
    a0 = factory.create(_issue(duedate="2024-10-01"))
    a1 = factory.update(
        a0,
        History(author=BOB, created=_ts(5), items=[_change("duedate", "2024-10-01", "2024-11-15 00:00:00.0")]),
    )
    assert a0.due_date == "2024-10-01"
    assert a1.due_date == "2024-11-15"


def test_create_keeps_raw_due_date_from_first_change():
    history = History(
        author=BOB, created=_ts(5), items=[_change("duedate", "2024-10-01 00:00:00.0", "2024-11-15 00:00:00.0")]
    )
    factory = _factory()
    a0 = factory.create(_issue(histories=[history], duedate="2024-11-15"))
    a1 = factory.update(a0, history)
    assert a0.due_date == "2024-10-01 00:00:00.0"
    assert a1.due_date == "2024-11-15"


def test_comment_keeps_state_and_advances_time():
    factory = _factory()
    a0 = factory.create(_issue())
    a1 = factory.update(a0, History(author=ALICE, created=_ts(100), items=[_change("status", "Open", "Blocked")]))
    c = factory.comment(a1, Comment(author=None, created=_ts(160), body="ping"))

    assert c.action == "comment"
    assert c.fields_changed == "comment"
    assert (c.actor, c.actor_username) == (INVALID_USER.display_name, INVALID_USER.name)
    assert c.timestamp == _ts(160)
    assert c.time_since_action == 60
    assert c.issue_age == 160
    assert c.time_in_state == 60
    untouched = {
        f.name
        for f in dc_fields(Action)
        if f.name
        not in {"action", "actor", "actor_username", "fields_changed", "timestamp", "issue_age", "time_in_state", "time_since_action"}
    }
    for name in untouched:
        assert getattr(c, name) == getattr(a1, name)


def test_custom_field_values_follow_definition_order_and_carry_forward():
    points = CustomFieldDefinition(name="Story Points", field_id="customfield_10016", history_name="story points")
    sprint = CustomFieldDefinition(name="Sprint", field_id="customfield_10020", history_name="sprint", separator=",")
    issue = _issue()
    issue.custom_fields = {"customfield_10016": 3, "customfield_10020": [{"name": "S1"}, {"name": "S2"}]}
    factory = _factory(custom_fields=[points, sprint])

    action = factory.create(issue)
    assert list(action.custom_field_values) == [points, sprint]
    assert action.custom_field_values[sprint] == "S1,S2"

    first = action
    for n in range(1, 6):
        action = factory.update(action, History(author=BOB, created=_ts(n), items=[_change("labels", "", str(n))]))
    assert action.custom_field_values == first.custom_field_values

    action = factory.update(action, History(author=BOB, created=_ts(10), items=[_change("story points", "3", "8")]))
    assert action.custom_field_values[points] == "8"
    assert action.custom_field_values[sprint] == "S1,S2"


def test_custom_field_values_are_private_to_each_action():
    points = CustomFieldDefinition(name="Story Points", field_id="customfield_10016", history_name="story points")
    issue = _issue()
    issue.custom_fields = {"customfield_10016": 3}
    factory = _factory(custom_fields=[points])

    a0 = factory.create(issue)
    c1 = factory.comment(a0, Comment(author=BOB, created=_ts(30), body="noted"))
    assert c1.custom_field_values is not a0.custom_field_values
    with pytest.raises(TypeError):
        c1.custom_field_values[points] = "13"
    assert a0.custom_field_values[points] == "3"
    assert hash(a0) == hash(a0.with_overrides())

    source = {points: "5"}
    action = Action(
        action="create",
        actor="Alice",
        actor_username="alice",
        issue_key="OBS-1",
        fields_changed="created",
        timestamp=T0,
        custom_field_values=source,
    )
    source[points] = "21"
    assert action.custom_field_values[points] == "5"


def test_user_lookup_failure_is_tagged_with_field():
    users = FakeUsers(ALICE, BOB, CAROL, failing={"bob-key"})
    factory = _factory(users)
    a0 = factory.create(_issue())
    history = History(author=BOB, created=_ts(5), items=[_change("assignee", "Alice", "Bob", "alice-key", "bob-key")])
    with pytest.raises(UserLookupError) as excinfo:
        factory.update(a0, history)
    assert excinfo.value.field == "assignee"


def test_custom_field_parse_failure_propagates():
    broken = CustomFieldDefinition(name="Broken", field_id="customfield_1", history_name="broken")
    issue = _issue()
    issue.custom_fields = {"customfield_1": {"unexpected": 1}}
    with pytest.raises(CustomFieldParseError) as excinfo:
        _factory(custom_fields=[broken]).create(issue)
    assert excinfo.value.field == "Broken"


def test_time_diff_truncates_to_whole_seconds():
    assert time_diff(T0, T0) == 0
    assert time_diff(T0, T0 + timedelta(milliseconds=1999)) == 1
    assert time_diff(T0, T0 + timedelta(days=1)) == 86400

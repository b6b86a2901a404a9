from datetime import timedelta

import pytest

from services.presence.app.core.models import PrivacySettings, Session
from services.presence.app.core.projector import project, project_session

from .conftest import START


def make_session(session_id="s1", connected_at=START, **fields):
    return Session(
        session_id=session_id,
        player_ref="p1",
        display_name=fields.pop("display_name", "Notch"),
        connected_at=connected_at,
        last_update=connected_at,
        **fields,
    )


@pytest.mark.parametrize("name", ["Notch", "Anonymous", "", "   x  ", "jeb_"])
def test_hidden_username_is_always_anonymous(name):
    session = make_session(
        display_name=name, privacy=PrivacySettings(show_username=False)
    )
    assert project_session(session, START).username == "Anonymous"


def test_visible_fields_are_published():
    session = make_session(
        minecraft_version="1.20.4",
        world_name="Valley",
        server_address="mc.example.org",
    )
    view = project_session(session, START)

    assert view.username == "Notch"
    assert view.minecraft_version == "1.20.4"
    assert view.world_name == "Valley"
    assert view.server_address == "mc.example.org"


def test_hidden_version_and_world_are_null():
    session = make_session(
        minecraft_version="1.20.4",
        world_name="Valley",
        privacy=PrivacySettings(show_version=False, show_world=False),
    )
    view = project_session(session, START)

    assert view.minecraft_version is None
    assert view.world_name is None
    assert view.privacy_show_version is False
    assert view.privacy_show_world is False


def test_hidden_server_with_address_reports_hidden_server():
    session = make_session(
        server_address="mc.example.org",
        privacy=PrivacySettings(show_server=False),
    )
    assert project_session(session, START).server_address == "Hidden Server"


def test_hidden_server_without_address_is_null():
    session = make_session(privacy=PrivacySettings(show_server=False))
    assert project_session(session, START).server_address is None


def test_duration_is_recomputed_from_now():
    session = make_session()
    assert project_session(session, START).session_duration == 0
    later = START + timedelta(minutes=2, seconds=5)
    assert project_session(session, later).session_duration == 125


def test_most_recently_connected_first_with_id_tie_break():
    older = make_session("b", START)
    newest = make_session("z", START + timedelta(seconds=10))
    tie_a = make_session("c", START + timedelta(seconds=5))
    tie_b = make_session("a", START + timedelta(seconds=5))

    views = project([older, tie_a, newest, tie_b], START + timedelta(minutes=1))

    assert [v.session_id for v in views] == ["z", "a", "c", "b"]


def test_empty_snapshot_projects_to_empty_list():
    assert project([], START) == []

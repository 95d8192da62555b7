from __future__ import annotations

import time

import pytest

from showcase.database import Database


def test_create_user_normalises_fields(database: Database) -> None:
    user = database.create_user("  user_2abc  ", email=" Alice@Example.COM ", name=" Alice ")

    assert user.external_id == "user_2abc"
    assert user.email == "alice@example.com"
    assert user.name == "Alice"

    fetched = database.get_user_by_external_id("user_2abc")
    assert fetched == user


def test_external_id_must_be_unique_and_non_empty(database: Database) -> None:
    database.create_user("user_dup")
    with pytest.raises(ValueError):
        database.create_user("user_dup")
    with pytest.raises(ValueError):
        database.create_user("   ")


def test_create_and_fetch_project_with_owner(database: Database) -> None:
    owner = database.create_user("user_owner", email="owner@example.com")
    project = database.create_project(
        owner.id,
        title="Portfolio",
        description="Personal site",
        tech_stack=["Python", "FastAPI"],
        github_url="https://github.com/example/portfolio",
    )

    assert project.user_id == owner.id
    assert project.tech_stack == ("Python", "FastAPI")
    assert project.live_url is None
    assert project.owner is None

    joined = database.get_project(project.id, include_owner=True)
    assert joined is not None
    assert joined.owner == owner
    assert joined.title == "Portfolio"


def test_tech_stack_defaults_to_empty(database: Database) -> None:
    owner = database.create_user("user_owner")
    project = database.create_project(owner.id, title="Bare")
    assert project.tech_stack == ()
    assert project.description is None


def test_list_projects_is_newest_first(database: Database) -> None:
    owner = database.create_user("user_owner")
    titles = ["first", "second", "third"]
    for title in titles:
        database.create_project(owner.id, title=title)
        time.sleep(0.001)

    listed = database.list_projects()
    assert [project.title for project in listed] == list(reversed(titles))
    assert all(project.owner == owner for project in listed)
    assert [p.id for p in database.list_projects()] == [p.id for p in listed]


def test_update_project_only_touches_supplied_fields(database: Database) -> None:
    owner = database.create_user("user_owner")
    project = database.create_project(
        owner.id,
        title="Original",
        description="Keep me",
        tech_stack=["Rust"],
        image_url="https://img.example.com/a.png",
    )

    updated = database.update_project(project.id, title="Renamed", tech_stack=["Go", "Rust"])
    assert updated is not None
    assert updated.title == "Renamed"
    assert updated.description == "Keep me"
    assert updated.tech_stack == ("Go", "Rust")
    assert updated.user_id == owner.id

    cleared = database.update_project(project.id, description=None, tech_stack=None, image_url=None)
    assert cleared is not None
    assert cleared.description is None
    assert cleared.tech_stack == ()
    assert cleared.image_url is None
    assert cleared.title == "Renamed"


def test_update_project_ignores_owner_changes(database: Database) -> None:
    owner = database.create_user("user_owner")
    other = database.create_user("user_other")
    project = database.create_project(owner.id, title="Mine")

    updated = database.update_project(project.id, user_id=other.id)
    assert updated is not None
    assert updated.user_id == owner.id


def test_update_project_rejects_empty_title(database: Database) -> None:
    owner = database.create_user("user_owner")
    project = database.create_project(owner.id, title="Mine")
    with pytest.raises(ValueError):
        database.update_project(project.id, title="")


def test_update_missing_project_returns_none(database: Database) -> None:
    assert database.update_project("missing", title="Anything") is None


def test_delete_project(database: Database) -> None:
    owner = database.create_user("user_owner")
    project = database.create_project(owner.id, title="Short lived")

    assert database.delete_project(project.id) is True
    assert database.get_project(project.id) is None
    assert database.delete_project(project.id) is False


def test_get_user_with_projects(database: Database) -> None:
    alice = database.create_user("user_alice")
    bob = database.create_user("user_bob")
    database.create_project(alice.id, title="A1")
    database.create_project(bob.id, title="B1")
    database.create_project(alice.id, title="A2")

    result = database.get_user_with_projects("user_alice")
    assert result is not None
    user, projects = result
    assert user == alice
    assert [project.title for project in projects] == ["A1", "A2"]

    assert database.get_user_with_projects("user_missing") is None

    carol = database.create_user("user_carol")
    result = database.get_user_with_projects("user_carol")
    assert result == (carol, [])


def test_list_users(database: Database) -> None:
    assert database.list_users() == []
    first = database.create_user("user_one")
    second = database.create_user("user_two")
    assert database.list_users() == [first, second]

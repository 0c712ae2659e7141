import pytest
from unittest.mock import MagicMock
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError

from api import shared_api_logic as services
from api.models import Goal


def test_create_goal(db):
    goal = services.create_goal_logic(db, "Run a marathon")
    assert goal.id is not None
    assert goal.goal_name == "Run a marathon"


def test_create_goal_trims_label(db):
    goal = services.create_goal_logic(db, "\tRead more books \n")
    assert goal.goal_name == "Read more books"


@pytest.mark.parametrize("label", ["", "   ", None])
def test_create_goal_rejects_blank_label(db, label):
    with pytest.raises(ValueError):
        services.create_goal_logic(db, label)


def test_create_goal_rejects_long_label(db):
    with pytest.raises(ValueError):
        services.create_goal_logic(db, "x" * (services.GOAL_NAME_MAX_LENGTH + 1))


def test_list_goals_contains_created(db):
    goal = services.create_goal_logic(db, "listed")
    assert goal.id in [g.id for g in services.list_goals(db)]


def test_get_goal(db):
    goal = services.create_goal_logic(db, "fetch me")
    fetched = services.get_goal(db, goal.id)
    assert fetched is not None
    assert fetched.goal_name == "fetch me"


def test_delete_goal(db):
    goal = services.create_goal_logic(db, "delete me")
    goal_id = goal.id

    assert services.delete_goal_logic(db, goal_id) is not None
    assert services.get_goal(db, goal_id) is None


def test_delete_missing_goal_returns_none(db):
    assert services.delete_goal_logic(db, 123456789) is None


def test_refresh_goal_count_sets_gauge(db):
    services.create_goal_logic(db, "gauge")
    count = services.refresh_goal_count(db)
    assert count == db.query(Goal).count()
    assert REGISTRY.get_sample_value("goals_app_goals_total") == count


def test_check_database_live(db):
    assert services.check_database(db) is True


def test_check_database_down():
    broken = MagicMock()
    broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("refused"))
    assert services.check_database(broken) is False

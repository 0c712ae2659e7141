# api/shared_api_logic.py
import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from metrics import METRICS
from .models import Goal as GoalModel

logger = logging.getLogger(__name__)

GOAL_NAME_MAX_LENGTH = 255


def refresh_goal_count(db: Session) -> int:
    count = db.query(GoalModel).count()
    METRICS["goals_total"].set(count)
    return count


# Goal Services
def create_goal_logic(db: Session, goal_name: str) -> GoalModel:
    goal_name = (goal_name or "").strip()
    if not goal_name:
        raise ValueError("goal_name must not be blank")
    if len(goal_name) > GOAL_NAME_MAX_LENGTH:
        raise ValueError(f"goal_name must be at most {GOAL_NAME_MAX_LENGTH} characters")

    new_goal = GoalModel(goal_name=goal_name)
    db.add(new_goal)
    db.commit()
    db.refresh(new_goal)
    refresh_goal_count(db)
    logger.info("Created goal %s", new_goal.id)
    return new_goal


def list_goals(db: Session) -> List[GoalModel]:
    return db.query(GoalModel).order_by(GoalModel.id).all()


def get_goal(db: Session, goal_id: int) -> Optional[GoalModel]:
    return db.query(GoalModel).filter(GoalModel.id == goal_id).first()


def delete_goal_logic(db: Session, goal_id: int) -> Optional[GoalModel]:
    goal = get_goal(db, goal_id)
    if goal is None:
        return None
    db.delete(goal)
    db.commit()
    refresh_goal_count(db)
    logger.info("Deleted goal %s", goal_id)
    return goal


def check_database(db: Session) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False

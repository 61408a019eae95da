"""
Workspace-level permission checking utilities.

Used by the task endpoints that sit outside the scheduling services; the
services enforce membership themselves.
"""

import logging

from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from models import User, WorkspaceMember

logger = logging.getLogger(__name__)


def is_workspace_member(user: User, workspace_id: int, db: Session) -> bool:
    """
    Check if a user belongs to a workspace.

    Args:
        user: User object to check
        workspace_id: ID of the workspace
        db: Database session

    Returns:
        True if a WorkspaceMember row links the user to the workspace
    """
    membership = (
        db.query(WorkspaceMember)
        .filter(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user.id
        )
        .first()
    )
    if membership is None:
        logger.info(f"User {user.id} has no membership in workspace {workspace_id}")
        return False

    logger.debug(f"User {user.id} has role '{membership.role}' in workspace {workspace_id}")
    return True


def require_workspace_member(user: User, workspace_id: int, db: Session) -> None:
    """
    Require workspace membership, raising HTTPException if absent.

    Raises:
        HTTPException: 403 if the user is not a member

    Example:
        >>> require_workspace_member(current_user, task.workspace_id, db)
    """
    if not is_workspace_member(user, workspace_id, db):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this workspace"
        )

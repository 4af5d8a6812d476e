"""
User registry, user administration and the activity log.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from filter_configs.filter_configs import get_filter_config
from models.user import User
from models.user_activity import UserActivity, ACTIVITY_ACTIONS
from schemas import BulkRoleUpdate, BulkStatusUpdate, RoleUpdate, UserCreate, parse_payload
from services.exceptions import ContentValidationError, UserInactiveError, UserNotFoundError
from services.filter_builder import AnalyticsFilterBuilder, parse_bool
from services.universal_db_aggregator import build_conditions
from utils.decorators import with_session

logger = logging.getLogger(__name__)


def log_activity(session, user_id: Optional[int], action: str, details: Optional[Dict[str, Any]] = None,
                 ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> UserActivity:
    """Add an activity entry to the session; the caller commits it with its own changes"""
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")
    activity = UserActivity(
        user_id=user_id,
        action=action,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent
    )
    session.add(activity)
    logger.debug(f"Activity tracked: {action} by user {user_id}")
    return activity


def _existing_user(session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        raise UserNotFoundError(user_id)
    return user


def acting_user(session, user_id: Optional[int]) -> Optional[User]:
    """
    Resolve the user a change is attributed to.

    No id means an anonymous change. Unknown or deleted ids raise
    UserNotFoundError, deactivated users raise UserInactiveError.
    """
    if user_id is None:
        return None
    user = _existing_user(session, user_id)
    if not user.is_active:
        raise UserInactiveError(user_id)
    return user


def _existing_ids(session, user_ids: List[int]) -> List[int]:
    """Requested ids that belong to users that were not deleted; any other id is a 404"""
    user_ids = list(dict.fromkeys(user_ids))
    found = {
        row.id for row in session.query(User.id).filter(User.id.in_(user_ids), User.deleted_at.is_(None))
    }
    missing = [user_id for user_id in user_ids if user_id not in found]
    if missing:
        raise UserNotFoundError(missing[0])
    return user_ids


@with_session
def create_user(data: Dict[str, Any], session=None) -> Dict[str, Any]:
    payload = parse_payload(UserCreate, data)
    user = User(**payload)
    session.add(user)
    try:
        session.flush()
        log_activity(session, user.id, 'register', {'username': user.username})
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ContentValidationError('Username or email already registered') from e
    logger.info(f"Registered user {user.username} ({user.role})")
    return user.to_dict()


@with_session
def get_user(user_id: int, session=None) -> Dict[str, Any]:
    return _existing_user(session, user_id).to_dict()


@with_session
def list_users(params: Optional[Dict[str, Any]] = None, session=None) -> Dict[str, Any]:
    """Users newest first, filtered by role and is_active; deleted users are hidden"""
    params = params or {}
    pagination = AnalyticsFilterBuilder.build_pagination(params.get('page'), params.get('limit'))
    query = session.query(User).filter(User.deleted_at.is_(None))
    if params.get('role'):
        query = query.filter(User.role == params['role'])
    is_active = parse_bool(params.get('is_active', params.get('isActive')))
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()) \
        .offset(pagination['skip']).limit(pagination['limit']).all()
    return _page([user.to_dict() for user in users], total, pagination)


@with_session
def update_user_role(user_id: int, data: Dict[str, Any], acting_user_id: Optional[int] = None,
                     session=None) -> Dict[str, Any]:
    role = parse_payload(RoleUpdate, data)['role']
    acting_user(session, acting_user_id)
    user = _existing_user(session, user_id)

    old_role = user.role
    user.role = role
    log_activity(session, acting_user_id, 'role_change', {
        'target_user': user.id,
        'old_role': old_role,
        'new_role': role
    })
    session.commit()
    logger.info(f"User role updated: {user.username} {old_role} -> {role}")
    return user.to_dict()


@with_session
def bulk_update_roles(data: Dict[str, Any], acting_user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    """Set one role on several users; every id must exist"""
    payload = parse_payload(BulkRoleUpdate, data)
    acting_user(session, acting_user_id)
    user_ids = _existing_ids(session, payload['user_ids'])

    modified = session.query(User) \
        .filter(User.id.in_(user_ids), User.role != payload['role']) \
        .update({User.role: payload['role']}, synchronize_session=False)
    log_activity(session, acting_user_id, 'role_change', {
        'bulk_operation': True,
        'target_users': user_ids,
        'new_role': payload['role'],
        'affected_count': modified
    })
    session.commit()
    logger.info(f"Bulk role update: {modified} users set to {payload['role']}")
    return {'matched_count': len(user_ids), 'modified_count': modified}


@with_session
def toggle_user_status(user_id: int, acting_user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    """Flip is_active; a deactivated user can no longer be named as the acting user"""
    acting_user(session, acting_user_id)
    user = _existing_user(session, user_id)
    if user.id == acting_user_id:
        raise ContentValidationError('Cannot change the status of your own account')

    previous = user.is_active
    user.is_active = not previous
    log_activity(session, acting_user_id, 'status_change', {
        'target_user': user.id,
        'old_status': previous,
        'new_status': user.is_active
    })
    session.commit()
    logger.info(f"User status toggled: {user.username} -> {'active' if user.is_active else 'inactive'}")
    return user.to_dict()


@with_session
def bulk_set_status(data: Dict[str, Any], acting_user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    """Activate or deactivate several users at once"""
    payload = parse_payload(BulkStatusUpdate, data)
    acting_user(session, acting_user_id)
    user_ids = _existing_ids(session, payload['user_ids'])
    if acting_user_id in user_ids and not payload['set_active']:
        raise ContentValidationError('Cannot deactivate your own account')

    modified = session.query(User) \
        .filter(User.id.in_(user_ids), User.is_active != payload['set_active']) \
        .update({User.is_active: payload['set_active']}, synchronize_session=False)
    log_activity(session, acting_user_id, 'status_change', {
        'bulk_operation': True,
        'target_users': user_ids,
        'new_status': payload['set_active'],
        'affected_count': modified
    })
    session.commit()
    status_text = 'activated' if payload['set_active'] else 'deactivated'
    logger.info(f"Bulk status update: {modified} users {status_text}")
    return {'matched_count': len(user_ids), 'modified_count': modified}


@with_session
def delete_user(user_id: int, acting_user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    """
    Soft delete: the row stays so content and activities keep their owner,
    but the user disappears from listings and cannot act any more.
    """
    acting_user(session, acting_user_id)
    if user_id == acting_user_id:
        raise ContentValidationError('Cannot delete your own account')
    user = _existing_user(session, user_id)

    user.deleted_at = datetime.utcnow()
    user.is_active = False
    log_activity(session, acting_user_id, 'delete', {
        'deleted_user': {'id': user.id, 'username': user.username, 'email': user.email}
    })
    session.commit()
    logger.info(f"User deleted: {user.username}")
    return {'id': user.id, 'deleted': True}


@with_session
def list_activities(params: Optional[Dict[str, Any]] = None, session=None) -> Dict[str, Any]:
    """Activities newest first, filtered by action, user_id and created_at range"""
    params = params or {}
    builder = AnalyticsFilterBuilder(UserActivity)
    filters = builder.build_from_params(params, get_filter_config('activities'))
    pagination = AnalyticsFilterBuilder.build_pagination(params.get('page'), params.get('limit'))

    query = session.query(UserActivity)
    conditions = build_conditions(UserActivity, filters)
    if conditions:
        query = query.filter(*conditions)
    total = query.count()
    activities = query.order_by(UserActivity.created_at.desc(), UserActivity.id.desc()) \
        .offset(pagination['skip']).limit(pagination['limit']).all()
    return _page([activity.to_dict() for activity in activities], total, pagination)


@with_session
def list_user_activities(user_id: int, params: Optional[Dict[str, Any]] = None, session=None) -> Dict[str, Any]:
    _existing_user(session, user_id)
    return list_activities({**(params or {}), 'user_id': user_id}, session=session)


def _page(items, total: int, pagination: Dict[str, int]) -> Dict[str, Any]:
    return {
        'items': items,
        'total': total,
        'page': pagination['page'],
        'limit': pagination['limit'],
        'pages': (total + pagination['limit'] - 1) // pagination['limit']
    }

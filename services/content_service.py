"""
Catalog content management: create, read, list, update, soft delete.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from filter_configs.filter_configs import get_filter_config, get_valid_fields
from models.content import Content
from schemas import ContentCreate, ContentUpdate, parse_payload
from services.activity_service import acting_user, log_activity
from services.exceptions import ContentNotFoundError, DuplicateContentError
from services.filter_builder import AnalyticsFilterBuilder, to_snake_case
from services.universal_db_aggregator import build_conditions, run_pipeline
from utils.decorators import with_session

logger = logging.getLogger(__name__)

DEFAULT_LIST_SORT = 'created_at'


def _active_content(session, content_id: int) -> Content:
    content = session.query(Content).filter(Content.id == content_id, Content.is_active.is_(True)).first()
    if content is None:
        raise ContentNotFoundError(content_id)
    return content


def _apply_fields(content: Content, payload: Dict[str, Any]):
    dubbing = payload.pop('dubbing', None)
    for field, value in payload.items():
        setattr(content, field, value)
    if dubbing is not None:
        content.dubbing = dubbing


@with_session
def check_duplicate(platform: str, title: str, year: int, exclude_id: Optional[int] = None, session=None) -> bool:
    """True when an active record already uses (platform, title, year)"""
    query = session.query(Content.id).filter(
        Content.platform == platform,
        Content.title == title,
        Content.year == year,
        Content.is_active.is_(True)
    )
    if exclude_id is not None:
        query = query.filter(Content.id != exclude_id)
    return query.first() is not None


@with_session
def create_content(data: Dict[str, Any], user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    payload = parse_payload(ContentCreate, data)
    acting_user(session, user_id)

    if check_duplicate(payload['platform'], payload['title'], payload['year'], session=session):
        raise DuplicateContentError(payload['platform'], payload['title'], payload['year'])

    content = Content(created_by=user_id, is_active=True)
    _apply_fields(content, payload)
    session.add(content)
    try:
        session.flush()
        log_activity(session, user_id, 'create', {'content_id': content.id, 'title': content.title})
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.error(f"Integrity error creating content '{payload['title']}': {e}")
        raise DuplicateContentError(payload['platform'], payload['title'], payload['year']) from e

    logger.info(f"Created content {content.id}: {content.platform} / {content.title} ({content.year})")
    return content.to_dict()


@with_session
def get_content(content_id: int, session=None) -> Dict[str, Any]:
    return _active_content(session, content_id).to_dict()


@with_session
def list_content(params: Optional[Dict[str, Any]] = None, session=None) -> Dict[str, Any]:
    """
    Paginated list of active content.

    Filters: platform, genre, language (comma lists), year (single, range or
    list), search (substring of title or self-declared genre).
    Sorting: sort_by any content column (default created_at), sort_order.
    """
    params = AnalyticsFilterBuilder.parse_query_params(params)
    builder = AnalyticsFilterBuilder(Content)
    filters = builder.build_from_params(params, get_filter_config('content_list'))
    pagination = AnalyticsFilterBuilder.build_pagination(params.get('page'), params.get('limit'))

    query = session.query(Content)
    conditions = build_conditions(Content, filters)
    if conditions:
        query = query.filter(*conditions)
    # search spans title and self-declared genre
    search = params.get('search')
    if search and str(search).strip():
        pattern = f"%{str(search).strip()}%"
        query = query.filter(or_(Content.title.like(pattern), Content.self_declared_genre.like(pattern)))

    total = query.count()

    sort_by = to_snake_case(params['sort_by']) if params.get('sort_by') != 'count' else DEFAULT_LIST_SORT
    if sort_by not in get_valid_fields('content'):
        logger.warning(f"Invalid sort field {sort_by}; using {DEFAULT_LIST_SORT}")
        sort_by = DEFAULT_LIST_SORT
    column = getattr(Content, sort_by)
    query = query.order_by(column.asc() if params.get('sort_order') == 'asc' else column.desc(), Content.id.desc())

    items = query.offset(pagination['skip']).limit(pagination['limit']).all()
    return {
        'items': [item.to_dict() for item in items],
        'pagination': {
            'page': pagination['page'],
            'limit': pagination['limit'],
            'total': total,
            'pages': (total + pagination['limit'] - 1) // pagination['limit']
        },
        'filters': AnalyticsFilterBuilder.applied_filters(params)
    }


@with_session
def update_content(content_id: int, data: Dict[str, Any], user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    payload = parse_payload(ContentUpdate, data, exclude_unset=True)
    acting_user(session, user_id)
    content = _active_content(session, content_id)

    # Required columns can be changed but not cleared
    for field in ('platform', 'title', 'primary_language', 'year', 'source', 'age_rating'):
        if field in payload and payload[field] is None:
            payload.pop(field)

    platform = payload.get('platform', content.platform)
    title = payload.get('title', content.title)
    year = payload.get('year', content.year)
    if check_duplicate(platform, title, year, exclude_id=content.id, session=session):
        raise DuplicateContentError(platform, title, year)

    fields = sorted(payload)
    _apply_fields(content, payload)
    try:
        log_activity(session, user_id, 'update', {'content_id': content.id, 'fields': fields})
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateContentError(platform, title, year) from e

    logger.info(f"Updated content {content.id}: {fields}")
    return content.to_dict()


@with_session
def delete_content(content_id: int, user_id: Optional[int] = None, session=None) -> Dict[str, Any]:
    """Soft delete: the record stays in the table with is_active = false"""
    acting_user(session, user_id)
    content = _active_content(session, content_id)
    content.is_active = False
    log_activity(session, user_id, 'delete', {'content_id': content.id, 'title': content.title})
    session.commit()
    logger.info(f"Deleted content {content.id}")
    return {'id': content.id, 'is_active': False}


@with_session
def get_content_stats(session=None) -> Dict[str, Any]:
    """Total active records and counts by platform, genre and language"""
    by = {'platform': 'platform', 'genre': 'assigned_genre', 'language': 'primary_language'}
    facets = {
        f'by_{name}': [{'group': {'by': {name: field}, 'metrics': [{'type': 'count'}]}}, {'sort': {'count': 'desc'}}]
        for name, field in by.items()
    }
    facets['by_genre'].insert(0, {'match': {'assigned_genre': {'is_blank': False}}})
    facets['totals'] = [{'group': {'by': {}, 'metrics': [{'type': 'count', 'as': 'total'}]}}]

    result = run_pipeline(Content, [{'match': {'is_active': True}}, {'facet': facets}], session=session)
    totals = result.pop('totals')
    return {'total': totals[0]['total'] if totals else 0, **result}


"""
Universal aggregator for database tables.

Executes aggregation pipelines built by AnalyticsFilterBuilder against any
SQLAlchemy model. A pipeline is an ordered list of single-key stages:

- match: filters in format {field: value} or {field: {operator: value}}
- group: {"by": {output_name: field}, "metrics": [{"type": ..., "field": ..., "as": ...}]}
- bucket: {"field": ..., "boundaries": [...], "default": label, "labels": [...]}
- facet: {name: sub_pipeline}; every sub-pipeline runs over the same matched rows
- project: [field, ...] to select plain columns instead of whole rows
- sort: {field: "asc"/"desc"}
- skip / limit: pagination

Each pipeline (or facet branch) compiles to one SQL query.

Field names may address dubbing flags as "dubbing.<language>" and date parts
as "<date_field>.year" / "<date_field>.month".

Supported metric types: count, sum, avg, min, max, distinct (distinct count),
count_if (conditional count with "op" and "value").
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type, Union
from datetime import date, datetime
from sqlalchemy import func, desc, asc, and_, or_, case, distinct, extract
from sqlalchemy.inspection import inspect

from services.db import SessionLocal

logger = logging.getLogger(__name__)

_TERMINAL_STAGES = ('group', 'bucket', 'facet')


def run_pipeline(model_class: Type, pipeline: List[Dict[str, Any]], session=None) -> Union[List[Dict[str, Any]], Dict[str, List[Dict[str, Any]]]]:
    """
    Execute an aggregation pipeline.

    Args:
        model_class: SQLAlchemy model class
        pipeline: List of stages (see module docstring)
        session: Optional open session; a new one is opened and closed otherwise

    Returns:
        List of result dicts, or {facet_name: [result dicts]} for a facet pipeline

    Example:
        run_pipeline(Content, [
            {"match": {"is_active": True, "year": {"gte": 2020}}},
            {"group": {"by": {"platform": "platform"}, "metrics": [{"type": "count"}]}},
            {"sort": {"count": "desc"}},
            {"limit": 10}
        ])
    """
    logger.info(f"[START] Pipeline on {model_class.__tablename__}: {[next(iter(stage)) for stage in pipeline]}")
    own_session = session is None
    if own_session:
        session = SessionLocal()
    try:
        result = _execute(session, model_class, pipeline)
        if isinstance(result, dict):
            logger.info(f"[END] Facet pipeline returned {len(result)} facets")
        else:
            logger.info(f"[END] Pipeline returned {len(result)} rows")
        return result
    except Exception as e:
        logger.error(f"Error in pipeline on {model_class.__tablename__}: {e}")
        raise
    finally:
        if own_session:
            session.close()


def _execute(session, model_class: Type, pipeline: List[Dict[str, Any]]):
    matches = []
    index = 0
    # Leading match stages form the WHERE clause
    while index < len(pipeline) and 'match' in pipeline[index]:
        matches.append(pipeline[index]['match'] or {})
        index += 1

    stage = pipeline[index] if index < len(pipeline) else {}
    rest = pipeline[index + 1:] if stage and next(iter(stage)) in _TERMINAL_STAGES else pipeline[index:]

    if 'facet' in stage:
        if rest:
            raise ValueError("facet must be the last stage of a pipeline")
        base = [{'match': m} for m in matches]
        return {
            name: _execute(session, model_class, base + list(sub_pipeline))
            for name, sub_pipeline in stage['facet'].items()
        }

    for later in rest:
        name = next(iter(later))
        if name not in ('sort', 'skip', 'limit', 'project'):
            raise ValueError(f"Unsupported stage '{name}' after grouping")

    if 'group' in stage:
        query, labels, decoders = _grouped_query(session, model_class, stage['group'])
    elif 'bucket' in stage:
        query, labels, decoders = _bucket_query(session, model_class, stage['bucket'])
    else:
        query, labels, decoders = None, None, None

    projection = None
    if query is None:
        # Plain row listing
        projection = next((s['project'] for s in rest if 'project' in s), None)
        query, labels = _row_query(session, model_class, projection)

    for filters in matches:
        query = _apply_filters(query, model_class, filters)

    grouped = decoders is not None
    # ORDER BY must be in place before OFFSET/LIMIT
    for later in rest:
        if 'sort' in later:
            query = _apply_order_by(query, model_class, later['sort'], labels if grouped else None)
    group_keys = [name for name in (stage.get('group', {}).get('by') or {}) if name in (labels or [])]
    if group_keys:
        # Group keys break ties so results are deterministic
        query = query.order_by(*[asc(name) for name in group_keys])
    elif not grouped and projection is None:
        query = query.order_by(*inspect(model_class).primary_key)
    for later in rest:
        if 'skip' in later and later['skip']:
            query = query.offset(later['skip'])
        elif 'limit' in later and later['limit']:
            query = query.limit(later['limit'])

    rows = query.all()
    if grouped:
        return [_decode_row(row, decoders) for row in rows]
    if labels:
        return [{name: _to_json_value(value) for name, value in zip(labels, row)} for row in rows]
    return _process_regular_results(rows, model_class)


def resolve_column(model_class: Type, field: str):
    """Map a field name to a column expression, or None if the model has no such field"""
    if field.startswith('dubbing.'):
        field = f"dubbing_{field.split('.', 1)[1]}"
    elif field.endswith('.year') or field.endswith('.month'):
        base, part = field.rsplit('.', 1)
        column = resolve_column(model_class, base)
        return extract(part, column) if column is not None else None

    mapper = inspect(model_class)
    if field in mapper.columns:
        return getattr(model_class, field)
    return None


def _condition(column, operator: str, value: Any):
    """Build one SQL condition; returns None for unknown operators"""
    if operator == "eq":
        return column.is_(None) if value is None else column == value
    if operator == "ne":
        return column.isnot(None) if value is None else column != value
    if operator == "gt":
        return column > value
    if operator == "gte":
        return column >= value
    if operator == "lt":
        return column < value
    if operator == "lte":
        return column <= value
    if operator == "like":
        return column.like(f"%{value}%")
    if operator == "in":
        return column.in_(list(value))
    if operator == "not_in":
        # NULL counts as "not in the list"
        return or_(column.is_(None), ~column.in_(list(value)))
    if operator == "is_null":
        return column.is_(None) if value else column.isnot(None)
    if operator == "is_blank":
        if value:
            return or_(column.is_(None), column == '')
        return and_(column.isnot(None), column != '')
    logger.warning(f"Unknown filter operator ignored: {operator}")
    return None


def build_conditions(model_class: Type, filters: Dict[str, Any]) -> List[Any]:
    """Translate a filter dict into a list of SQL conditions"""
    conditions = []
    for field, value in filters.items():
        column = resolve_column(model_class, field)
        if column is None:
            logger.warning(f"Field {field} not found in {model_class.__tablename__}")
            continue

        if isinstance(value, dict):
            # Complex filters {operator: value}
            for operator, filter_value in value.items():
                if filter_value is None and operator not in ("eq", "ne"):
                    continue
                condition = _condition(column, operator, filter_value)
                if condition is not None:
                    conditions.append(condition)
        elif value is not None:
            # Simple filter
            conditions.append(column == value)
    return conditions


def _apply_filters(query, model_class: Type, filters: Dict[str, Any]):
    """Apply filters to query"""
    conditions = build_conditions(model_class, filters)
    if conditions:
        query = query.filter(and_(*conditions))
    return query


def _metric_expression(model_class: Type, metric: Dict[str, Any]):
    """Compile a metric spec; returns (label, expression) or None"""
    metric_type = metric.get("type", "count")
    field = metric.get("field")

    if metric_type == "count":
        return metric.get("as", "count"), func.count()

    column = resolve_column(model_class, field) if field else None
    if column is None:
        logger.warning(f"Metric {metric} skipped: field not found in {model_class.__tablename__}")
        return None

    label = metric.get("as") or f"{metric_type}_{field.replace('.', '_')}"
    if metric_type == "sum":
        return label, func.sum(column)
    if metric_type == "avg":
        return label, func.avg(column)
    if metric_type == "min":
        return label, func.min(column)
    if metric_type == "max":
        return label, func.max(column)
    if metric_type == "distinct":
        return label, func.count(distinct(column))
    if metric_type == "count_if":
        condition = _condition(column, metric.get("op", "eq"), metric.get("value", True))
        return label, func.coalesce(func.sum(case((condition, 1), else_=0)), 0)
    logger.warning(f"Unknown metric type ignored: {metric_type}")
    return None


def _grouped_query(session, model_class: Type, group: Dict[str, Any]):
    """Build a GROUP BY query; returns (query, labels, decoders)"""
    select_columns = []
    group_columns = []
    labels = []
    decoders = []

    for name, field in (group.get("by") or {}).items():
        column = resolve_column(model_class, field)
        if column is None:
            logger.warning(f"Group field {field} not found in {model_class.__tablename__}")
            continue
        select_columns.append(column.label(name))
        group_columns.append(column)
        labels.append(name)
        decoders.append((name, None))

    for metric in group.get("metrics") or [{"type": "count"}]:
        compiled = _metric_expression(model_class, metric)
        if compiled is None:
            continue
        label, expression = compiled
        select_columns.append(expression.label(label))
        labels.append(label)
        decoders.append((label, None))

    query = session.query(*select_columns).select_from(model_class)
    if group_columns:
        query = query.group_by(*group_columns)
    return query, labels, decoders


def _bucket_query(session, model_class: Type, bucket: Dict[str, Any]):
    """Build a bucketing query over one numeric field"""
    column = resolve_column(model_class, bucket["field"])
    if column is None:
        raise ValueError(f"Bucket field {bucket['field']} not found in {model_class.__tablename__}")
    boundaries = list(bucket["boundaries"])
    default = bucket.get("default", "other")
    labels_for = bucket.get("labels")

    whens = [
        (and_(column >= low, column < high), index)
        for index, (low, high) in enumerate(zip(boundaries, boundaries[1:]))
    ]
    bucket_index = case(*whens, else_=-1)

    select_columns = [bucket_index.label("bucket_index")]
    labels = ["bucket_index"]
    for metric in bucket.get("output") or [{"type": "count"}]:
        compiled = _metric_expression(model_class, metric)
        if compiled is None:
            continue
        label, expression = compiled
        select_columns.append(expression.label(label))
        labels.append(label)

    def decode_bucket(index):
        return bucket_label(index, boundaries, default, labels_for)

    decoders = [("bucket", decode_bucket)] + [(label, None) for label in labels[1:]]
    query = session.query(*select_columns).group_by(bucket_index).order_by(
        # Real buckets in boundary order, overflow last
        case((bucket_index == -1, len(boundaries)), else_=bucket_index)
    )
    return query, labels, decoders


def _row_query(session, model_class: Type, projection: Optional[List[str]]):
    if not projection:
        return session.query(model_class), None
    columns = []
    names = []
    for field in projection:
        column = resolve_column(model_class, field)
        if column is None:
            logger.warning(f"Projected field {field} not found in {model_class.__tablename__}")
            continue
        columns.append(column.label(field.replace('.', '_')))
        names.append(field)
    return session.query(*columns), names


def _apply_order_by(query, model_class: Type, order_by: Dict[str, str], labels: Optional[List[str]] = None):
    """Apply sorting; unknown fields are ignored"""
    for field, direction in order_by.items():
        descending = str(direction).lower() == "desc"
        if labels is not None:
            # Grouped results sort by output labels only
            if field not in labels:
                logger.warning(f"Sort field {field} is not part of the grouped output; ignored")
                continue
            query = query.order_by(desc(field) if descending else asc(field))
            continue
        column = resolve_column(model_class, field)
        if column is None:
            logger.warning(f"Sort field {field} not found in {model_class.__tablename__}; ignored")
            continue
        query = query.order_by(column.desc() if descending else column.asc())
    return query


def assign_bucket(value: Optional[float], boundaries: List[Union[int, float]]) -> int:
    """
    Index of the bucket [boundaries[i], boundaries[i+1]) holding value,
    or -1 when value is None, below the first boundary or at/above the last.
    """
    if value is None:
        return -1
    for index, (low, high) in enumerate(zip(boundaries, boundaries[1:])):
        if low <= value < high:
            return index
    return -1


def bucket_label(index: int, boundaries: List[Union[int, float]], default: str, labels: Optional[List[str]] = None) -> str:
    """Human label of a bucket index as returned by assign_bucket"""
    if index is None or index < 0:
        return default
    if labels:
        return labels[index]
    return f"{_format_number(boundaries[index])}-{_format_number(boundaries[index + 1])}"


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _decode_row(row, decoders):
    values = tuple(row)
    result = {}
    for (name, decoder), value in zip(decoders, values):
        result[name] = decoder(value) if decoder else _to_json_value(value)
    return result


def _to_json_value(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _process_regular_results(results, model_class: Type):
    """Process regular results"""
    processed_results = []

    for result in results:
        if hasattr(result, 'to_dict'):
            processed_results.append(result.to_dict())
        else:
            # Create dictionary from object attributes
            result_dict = {}
            for column in model_class.__table__.columns:
                result_dict[column.name] = _to_json_value(getattr(result, column.name, None))
            processed_results.append(result_dict)

    return processed_results


def aggregate_db_data(
    model_class: Type,
    filters: Optional[Dict[str, Any]] = None,
    group_by: Optional[List[str]] = None,
    aggregations: Optional[List[Dict[str, str]]] = None,
    order_by: Optional[Dict[str, str]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    return_format: str = "list",
    session=None
) -> Dict[str, Any]:
    """
    Convenience wrapper that assembles a pipeline from keyword arguments.

    Args:
        model_class: SQLAlchemy model class
        filters: Filters in format {field: value} or {field: {operator: value}}
        group_by: List of fields for grouping
        aggregations: List of aggregations [{"type": "count"}, {"type": "sum", "field": "field_name"}]
        order_by: Sorting {field: "asc"/"desc"}
        limit: Maximum number of results
        offset: Offset for pagination
        return_format: Return format - "list", "aggregated", "count_only"

    Returns:
        Dict with aggregation results

    Examples:
        # Count by platform
        result = aggregate_db_data(
            Content,
            filters={"is_active": True},
            group_by=["platform"],
            aggregations=[{"type": "count"}],
            order_by={"count": "desc"}
        )
    """
    pipeline = [{"match": filters or {}}]

    if return_format == "count_only" and not (aggregations or group_by):
        pipeline.append({"group": {"by": {}, "metrics": [{"type": "count"}]}})
        rows = run_pipeline(model_class, pipeline, session=session)
        return {"total": rows[0]["count"] if rows else 0}

    if aggregations or group_by:
        pipeline.append({"group": {
            "by": {field: field for field in (group_by or [])},
            "metrics": aggregations or [{"type": "count"}]
        }})
    if order_by:
        pipeline.append({"sort": order_by})
    if offset:
        pipeline.append({"skip": offset})
    if limit:
        pipeline.append({"limit": limit})

    results = run_pipeline(model_class, pipeline, session=session)
    return _format_result(results, return_format, limit, offset)


def _format_result(processed_results: List[Dict], return_format: str, limit: Optional[int], offset: Optional[int]):
    """Format result"""
    count = len(processed_results)
    logger.debug(f"Formatting result: return_format={return_format}, count={count}")

    if return_format == "count_only":
        # If there's only one result with count, return its value
        if count == 1 and "count" in processed_results[0]:
            return {"total": processed_results[0]["count"]}
        return {"total": count}
    elif return_format == "aggregated":
        return {
            "results": processed_results,
            "count": count
        }
    else:  # "list"
        return {
            "results": processed_results,
            "count": count,
            "limit": limit,
            "offset": offset or 0
        }


def count_records(model_class: Type, filters: Optional[Dict[str, Any]] = None, session=None) -> int:
    """Number of rows matching filters"""
    return aggregate_db_data(model_class, filters=filters, return_format="count_only", session=session)["total"]

"""
Catalog analytics reports.

Every report takes the raw request parameters (camelCase or snake_case),
builds the shared filter predicate through AnalyticsFilterBuilder and runs one
or more pipelines in a single session. Results use snake_case keys.
"""
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from config import (
    TREND_START_YEAR, LOW_QUALITY_SAMPLE_LIMIT, TOP_DUBBED_LANGUAGES_LIMIT
)
from filter_configs.filter_configs import resolve_dimension, get_valid_fields
from models.content import Content, DUBBING_LANGUAGES
from services.content_metrics import (
    summarize_freshness, summarize_quality, QUALITY_FIELDS, FRESHNESS_FIELDS
)
from services.exceptions import ContentValidationError
from services.filter_builder import (
    AnalyticsFilterBuilder, NAMED_METRICS, to_list, to_snake_case, parse_int, parse_date
)
from services.universal_db_aggregator import run_pipeline
from utils.decorators import with_filters

logger = logging.getLogger(__name__)

DURATION_BOUNDARIES = [0, 1, 2, 3, 5, 10, 20, 50]
DURATION_OVERFLOW_LABEL = '50+'

QUALITY_BOUNDARIES = [0, 40, 60, 80, 101]
QUALITY_LABELS = ['0-39', '40-59', '60-79', '80-100']
LOW_QUALITY_SCORE = 60

CUSTOM_METRICS = ['count', 'avgDuration', 'totalDuration', 'avgDubbings']

DEFAULT_DIMENSIONS = ['platform', 'genre', 'language', 'type']

RECENT_CONTENT_LIMIT = 5

_DUBBING_METRICS = [
    {'type': 'count_if', 'field': f'dubbing.{language}', 'op': 'eq', 'value': True, 'as': language}
    for language in DUBBING_LANGUAGES
]


def _grouped(builder: AnalyticsFilterBuilder, group_by, session, metrics=('count',), sort=None, pagination=None):
    pipeline = builder.build_pipeline(group_by, metrics=metrics, sort=sort, pagination=pagination)
    return run_pipeline(Content, pipeline, session=session)


def _sort_from(params: Dict[str, Any]) -> Dict[str, str]:
    return AnalyticsFilterBuilder.build_sort(params.get('sort_by'), params.get('sort_order'))


def _distribution(params, builder, session, dimension: str) -> Dict[str, Any]:
    rows = _grouped(builder, dimension, session, sort=_sort_from(params))
    return {
        'data': rows,
        'filters': AnalyticsFilterBuilder.applied_filters(params),
        'total': sum(row['count'] for row in rows)
    }


def _default_year_window(params: Dict[str, Any], builder: AnalyticsFilterBuilder):
    """Restrict to TREND_START_YEAR..current year when no year constraint was given"""
    if 'year' not in builder.get_filters():
        builder.add_custom('year', {
            'gte': parse_int(params.get('start_year')) or TREND_START_YEAR,
            'lte': parse_int(params.get('end_year')) or date.today().year
        })


def _dimension_field(name: str) -> str:
    field = resolve_dimension(name)
    if field not in get_valid_fields('content'):
        raise ContentValidationError(f"Invalid grouping field '{name}'")
    return field


@with_filters('content', Content)
def platform_distribution(params, builder, session=None):
    return _distribution(params, builder, session, 'platform')


@with_filters('content', Content)
def language_stats(params, builder, session=None):
    return _distribution(params, builder, session, 'language')


@with_filters('content', Content)
def source_breakdown(params, builder, session=None):
    return _distribution(params, builder, session, 'source')


@with_filters('content', Content)
def age_rating_distribution(params, builder, session=None):
    return _distribution(params, builder, session, 'ageRating')


@with_filters('content', Content)
def genre_trends(params, builder, session=None):
    """Per-genre yearly counts, genres sorted by total descending"""
    builder.exclude_blank('assigned_genre')
    rows = _grouped(builder, ['genre', 'year'], session, sort={'year': 'asc'})

    genres = {}
    for row in rows:
        entry = genres.setdefault(row['genre'], {'genre': row['genre'], 'data': [], 'total': 0})
        entry['data'].append({'year': row['year'], 'count': row['count']})
        entry['total'] += row['count']

    data = sorted(genres.values(), key=lambda item: (-item['total'], item['genre']))
    return {'data': data, 'filters': AnalyticsFilterBuilder.applied_filters(params)}


@with_filters('content', Content)
def yearly_releases(params, builder, session=None):
    _default_year_window(params, builder)
    rows = _grouped(builder, 'year', session, sort={'year': 'asc'})
    return {
        'data': rows,
        'filters': AnalyticsFilterBuilder.applied_filters(params),
        'total': sum(row['count'] for row in rows)
    }


@with_filters('content', Content)
def dubbing_analysis(params, builder, session=None):
    """Per-language dubbed counts with the platforms carrying them, and the distribution of dubbing counts"""
    filters = builder.get_filters()
    result = run_pipeline(Content, [
        {'match': filters},
        {'facet': {
            'by_platform': [{'group': {'by': {'platform': 'platform'}, 'metrics': _DUBBING_METRICS}}],
            'distribution': [
                {'group': {'by': {'dubbing_count': 'total_dubbings'},
                           'metrics': [{'type': 'count', 'as': 'content_count'}]}},
                {'sort': {'dubbing_count': 'asc'}}
            ]
        }}
    ], session=session)

    breakdown = []
    for language in DUBBING_LANGUAGES:
        platforms = sorted(row['platform'] for row in result['by_platform'] if row[language])
        count = sum(row[language] for row in result['by_platform'])
        if count:
            breakdown.append({'language': language, 'count': count, 'platforms': platforms})
    breakdown.sort(key=lambda item: -item['count'])

    return {
        'language_breakdown': breakdown,
        'dubbing_distribution': result['distribution'],
        'filters': AnalyticsFilterBuilder.applied_filters(params)
    }


@with_filters('content', Content)
def duration_analysis(params, builder, session=None):
    """Duration statistics and counts per duration range"""
    builder.add_custom('duration_hours', {'is_null': False})
    bucket = AnalyticsFilterBuilder.build_bucket(
        'duration_hours',
        DURATION_BOUNDARIES,
        DURATION_OVERFLOW_LABEL,
        labels=[f"{low}-{high} hrs" for low, high in zip(DURATION_BOUNDARIES, DURATION_BOUNDARIES[1:])]
    )
    result = run_pipeline(Content, [
        {'match': builder.get_filters()},
        {'facet': {
            'statistics': [{'group': {'by': {}, 'metrics': [
                NAMED_METRICS['avgDuration'], NAMED_METRICS['minDuration'], NAMED_METRICS['maxDuration'],
                {'type': 'count', 'as': 'total_content'}
            ]}}],
            'ranges': [bucket]
        }}
    ], session=session)

    statistics = result['statistics'][0] if result['statistics'] and result['statistics'][0]['total_content'] else {}
    ranges = [{'range': row['bucket'], 'count': row['count']} for row in result['ranges']]
    return {
        'statistics': statistics,
        'ranges': ranges,
        'filters': AnalyticsFilterBuilder.applied_filters(params)
    }


@with_filters('content', Content)
def dashboard_summary(params, builder, session=None):
    """Headline counters plus the most recently released titles; request filters are not applied"""
    active = {'is_active': True}
    current_year = date.today().year
    result = run_pipeline(Content, [
        {'match': active},
        {'facet': {
            'totals': [{'group': {'by': {}, 'metrics': [
                {'type': 'count', 'as': 'total_content'}, NAMED_METRICS['platformCount']
            ]}}],
            'this_year': [{'match': {'year': current_year}},
                          {'group': {'by': {}, 'metrics': [{'type': 'count', 'as': 'count'}]}}],
            'genres': [{'match': {'assigned_genre': {'is_blank': False}}},
                       {'group': {'by': {}, 'metrics': [NAMED_METRICS['genreCount']]}}],
            'recent': [{'match': {'release_date': {'is_null': False}}},
                       {'sort': {'release_date': 'desc'}},
                       {'limit': RECENT_CONTENT_LIMIT},
                       {'project': ['id', 'title', 'platform', 'year', 'release_date']}]
        }}
    ], session=session)

    totals = result['totals'][0] if result['totals'] else {}
    return {
        'total_content': totals.get('total_content', 0),
        'total_platforms': totals.get('platform_count', 0),
        'content_this_year': result['this_year'][0]['count'] if result['this_year'] else 0,
        'total_genres': result['genres'][0]['genre_count'] if result['genres'] else 0,
        'recent_content': result['recent']
    }


def validate_custom_request(body: Dict[str, Any]) -> None:
    """Reject custom analytics requests without a grouping or with an unknown metric"""
    group_by = body.get('groupBy') or body.get('group_by')
    if not group_by:
        raise ContentValidationError('groupBy field is required')
    metric = body.get('metric', 'count')
    if metric not in CUSTOM_METRICS:
        raise ContentValidationError(f"Invalid metric '{metric}'", details=[{'field': 'metric', 'allowed': CUSTOM_METRICS}])
    dimensions = group_by if isinstance(group_by, dict) else to_list(group_by)
    for name in (dimensions.values() if isinstance(dimensions, dict) else dimensions):
        _dimension_field(name)


@with_filters('content', Content)
def custom_analytics(params, builder, session=None):
    """
    Group by caller-chosen dimensions with one metric.

    ``params`` merges query string and body; ``group_by`` may be a name,
    a comma list or a {output_name: dimension} mapping.
    """
    validate_custom_request(params)
    group_by = params['group_by']
    metric = params.get('metric', 'count')
    aggregation_type = params.get('aggregation_type', 'count')

    metrics = []
    if aggregation_type == 'count' or metric == 'count':
        metrics.append('count')
    if metric == 'avgDuration' or aggregation_type == 'avg':
        metrics.append('avgDuration')
    if metric == 'totalDuration':
        metrics.append('totalDuration')
    if metric == 'avgDubbings':
        metrics.append('avgDubbings')

    sort = _sort_from(params)
    rows = _grouped(builder, group_by, session, metrics=metrics, sort=sort)
    return {
        'data': rows,
        'filters': AnalyticsFilterBuilder.applied_filters(params),
        'group_by': group_by,
        'metric': metric
    }


def _monthly_window(params: Dict[str, Any]):
    end = parse_date(params.get('end_date')) or date.today()
    start = parse_date(params.get('start_date'))
    if start is None:
        year, month = end.year, end.month - 11
        if month <= 0:
            month += 12
            year -= 1
        start = date(year, month, 1)
    return start, end


@with_filters('content', Content)
def monthly_release_trend(params, builder, session=None):
    """Releases per calendar month; defaults to the 12 months ending today"""
    start, end = _monthly_window(params)
    builder.filters['release_date'] = {'gte': start, 'lte': end}
    rows = _grouped(
        builder,
        {'year': 'release_date.year', 'month': 'release_date.month'},
        session,
        sort={'year': 'asc', 'month': 'asc'}
    )
    data = [{'period': f"{int(row['year']):04d}-{int(row['month']):02d}", 'count': row['count']} for row in rows]
    return {'data': data, 'filters': AnalyticsFilterBuilder.applied_filters(params)}


@with_filters('content', Content)
def platform_growth(params, builder, session=None):
    """Releases per year per platform"""
    _default_year_window(params, builder)
    rows = _grouped(builder, ['year', 'platform'], session, sort={'year': 'asc', 'count': 'desc'})
    return {'data': rows, 'filters': AnalyticsFilterBuilder.applied_filters(params)}


@with_filters('content', Content)
def genre_platform_heatmap(params, builder, session=None):
    builder.exclude_blank('assigned_genre')
    rows = _grouped(builder, ['genre', 'platform'], session, sort={'count': 'desc'})
    return {'data': rows, 'filters': AnalyticsFilterBuilder.applied_filters(params)}


@with_filters('content', Content)
def language_platform_matrix(params, builder, session=None):
    builder.exclude_blank('primary_language')
    rows = _grouped(builder, ['language', 'platform'], session, sort={'count': 'desc'})
    return {'data': rows, 'filters': AnalyticsFilterBuilder.applied_filters(params)}


@with_filters('content', Content)
def duration_by_format_genre(params, builder, session=None):
    rows = _grouped(
        builder, ['format', 'genre'], session,
        metrics=['avgDuration', 'minDuration', 'maxDuration', 'count'],
        sort={'avg_duration': 'desc'}
    )
    return {'data': rows, 'filters': AnalyticsFilterBuilder.applied_filters(params)}


def _penetration(row: Dict[str, Any]) -> Dict[str, Any]:
    total = row.pop('count', 0) or 0
    dubbed = row.get('dubbed') or 0
    return {
        **row,
        'total': total,
        'dubbed': dubbed,
        'pct_dubbed': dubbed / total * 100 if total else 0,
        'avg_dubbings': row.get('avg_dubbings') or 0
    }


@with_filters('content', Content)
def dubbing_penetration(params, builder, session=None):
    """Share of dubbed titles overall and by platform"""
    metrics = [NAMED_METRICS['count'], NAMED_METRICS['dubbedContent'], NAMED_METRICS['avgDubbings']]
    result = run_pipeline(Content, [
        {'match': builder.get_filters()},
        {'facet': {
            'overall': [{'group': {'by': {}, 'metrics': metrics}}],
            'by_platform': [{'group': {'by': {'platform': 'platform'}, 'metrics': metrics}}]
        }}
    ], session=session)

    overall = _penetration(dict(result['overall'][0])) if result['overall'] else _penetration({})
    by_platform = sorted((_penetration(dict(row)) for row in result['by_platform']),
                         key=lambda item: -item['pct_dubbed'])
    return {
        'overall': overall,
        'by_platform': by_platform,
        'filters': AnalyticsFilterBuilder.applied_filters(params)
    }


@with_filters('content', Content)
def top_dubbed_languages(params, builder, session=None):
    limit = parse_int(params.get('limit')) or TOP_DUBBED_LANGUAGES_LIMIT
    rows = run_pipeline(Content, [
        {'match': builder.get_filters()},
        {'group': {'by': {}, 'metrics': _DUBBING_METRICS}}
    ], session=session)

    totals = rows[0] if rows else {}
    data = [{'language': language, 'count': totals.get(language) or 0} for language in DUBBING_LANGUAGES]
    data = sorted((item for item in data if item['count']), key=lambda item: -item['count'])
    return {'data': data[:max(limit, 1)], 'filters': AnalyticsFilterBuilder.applied_filters(params), 'limit': limit}


@with_filters('content', Content)
def content_freshness(params, builder, session=None):
    rows = run_pipeline(Content, [{'match': builder.get_filters()}, {'project': FRESHNESS_FIELDS}], session=session)
    report = summarize_freshness(rows, now=datetime.now())
    report['filters'] = AnalyticsFilterBuilder.applied_filters(params)
    return report


@with_filters('content', Content)
def data_quality_score(params, builder, session=None):
    rows = run_pipeline(Content, [{'match': builder.get_filters()}, {'project': QUALITY_FIELDS}], session=session)
    report = summarize_quality(rows, QUALITY_BOUNDARIES, QUALITY_LABELS, LOW_QUALITY_SAMPLE_LIMIT,
                               low_score=LOW_QUALITY_SCORE)
    report['filters'] = AnalyticsFilterBuilder.applied_filters(params)
    return report


@with_filters('content', Content)
def multi_dimensional(params, builder, session=None):
    """Count-per-value breakdown for each requested dimension plus summary statistics"""
    requested = to_list(params.get('dimensions')) or list(DEFAULT_DIMENSIONS)
    dimensions = []
    for name in requested:
        if resolve_dimension(name) in get_valid_fields('content'):
            dimensions.append(name)
        else:
            logger.warning(f"Unknown dimension ignored: {name}")

    facets = AnalyticsFilterBuilder.build_facets(dimensions)
    facets['summary'] = [{'group': {'by': {}, 'metrics': [
        {'type': 'count', 'as': 'total_content'},
        NAMED_METRICS['avgDuration'], NAMED_METRICS['avgDubbings'],
        NAMED_METRICS['platformCount'], NAMED_METRICS['genreCount'], NAMED_METRICS['languageCount']
    ]}}]
    result = run_pipeline(Content, [{'match': builder.get_filters()}, {'facet': facets}], session=session)

    summary = result.pop('summary')
    return {
        **result,
        'summary': summary[0] if summary else {},
        'filters': AnalyticsFilterBuilder.applied_filters(params),
        'dimensions': dimensions
    }


@with_filters('content', Content)
def advanced_slicing(params, builder, session=None):
    """Paginated slice by one or two dimensions with the full metric set"""
    primary = params.get('group_by') or 'platform'
    secondary = params.get('secondary_group_by')
    _dimension_field(primary)
    if secondary:
        _dimension_field(secondary)
        group_by = {'primary': primary, 'secondary': secondary}
    else:
        group_by = primary

    pagination = AnalyticsFilterBuilder.build_pagination(params.get('page'), params.get('limit'))
    metrics = ['count', 'avgDuration', 'totalDuration', 'avgDubbings', 'minYear', 'maxYear']
    metric_specs, _ = AnalyticsFilterBuilder.build_metrics(metrics)
    group_stage = {'by': AnalyticsFilterBuilder.build_group_by(group_by), 'metrics': metric_specs}

    result = run_pipeline(Content, [
        {'match': builder.get_filters()},
        {'facet': {
            'data': [{'group': group_stage}, {'sort': _sort_from(params)},
                     {'skip': pagination['skip']}, {'limit': pagination['limit']}],
            'groups': [{'group': {'by': group_stage['by'], 'metrics': [NAMED_METRICS['count']]}}]
        }}
    ], session=session)

    total = len(result['groups'])
    return {
        'data': result['data'],
        'pagination': {
            'page': pagination['page'],
            'limit': pagination['limit'],
            'total': total,
            'pages': math.ceil(total / pagination['limit'])
        },
        'filters': AnalyticsFilterBuilder.applied_filters(params),
        'group_by': {'primary': primary, 'secondary': secondary} if secondary else primary
    }


def _round(value, digits=2):
    return round(value, digits) if value is not None else None


@with_filters('content', Content)
def comparative(params, builder, session=None):
    """Compare segments of one dimension across the full metric set"""
    compare_by = params.get('compare_by') or 'platform'
    _dimension_field(compare_by)
    metric = to_snake_case(params.get('metric') or 'count')

    metric_specs, _ = AnalyticsFilterBuilder.build_metrics([
        'count', 'avgDuration', 'totalDuration', 'avgDubbings', 'dubbedContent',
        'minYear', 'maxYear', 'formatCount', 'genreCount', 'languageCount'
    ])
    rows = run_pipeline(Content, [
        {'match': builder.get_filters()},
        {'group': {'by': {'segment': resolve_dimension(compare_by)}, 'metrics': metric_specs}}
    ], session=session)

    segments = []
    for row in rows:
        count = row['count']
        segments.append({
            'segment': row['segment'],
            'count': count,
            'avg_duration': _round(row['avg_duration']),
            'total_duration': _round(row['total_duration']),
            'avg_dubbings': _round(row['avg_dubbings']),
            'dubbing_penetration': round(row['dubbed'] / count * 100, 2) if count else 0,
            'year_range': {'min': row['min_year'], 'max': row['max_year']},
            'format_count': row['format_count'],
            'genre_count': row['genre_count'],
            'language_count': row['language_count'],
        })

    if any(isinstance(s.get(metric), (int, float)) for s in segments):
        segments.sort(key=lambda item: (item[metric] is None, -(item[metric] or 0)))
    else:
        logger.warning(f"Comparative metric {metric} is not sortable; keeping segment order")

    size = len(segments)
    insights = {
        'total_segments': size,
        'top_performer': segments[0] if segments else None,
        'averages': {
            'count': sum(s['count'] for s in segments) / size if size else 0,
            'avg_duration': sum(s['avg_duration'] or 0 for s in segments) / size if size else 0,
            'dubbing_penetration': sum(s['dubbing_penetration'] for s in segments) / size if size else 0,
        }
    }
    return {
        'data': segments,
        'insights': insights,
        'filters': AnalyticsFilterBuilder.applied_filters(params),
        'compare_by': compare_by,
        'metric': metric
    }


# --- Public reports: no filters beyond dates/years ---

def _only(params: Optional[Dict[str, Any]], names: List[str]) -> Dict[str, Any]:
    params = AnalyticsFilterBuilder.parse_query_params(params)
    return {name: params[name] for name in names if name in params}


def public_monthly_release_trend(params=None, session=None):
    return monthly_release_trend(_only(params, ['start_date', 'end_date']), session=session)['data']


def public_platform_distribution(params=None, session=None):
    return platform_distribution({}, session=session)['data']


def public_language_platform_matrix(params=None, session=None):
    return language_platform_matrix({}, session=session)['data']


def public_genre_trends(params=None, session=None):
    return genre_trends(_only(params, ['start_year', 'end_year']), session=session)['data']

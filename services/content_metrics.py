"""
Per-record derived metrics: freshness (age since release) and data quality
(weighted completeness score out of 100).
"""
import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from models.content import MIN_YEAR
from services.filter_builder import parse_date
from services.universal_db_aggregator import assign_bucket, bucket_label

logger = logging.getLogger(__name__)

FRESHNESS_WINDOWS = (7, 30, 90)

# (field, weight); order is the order of reported missing fields
QUALITY_WEIGHTS = [
    ('platform', 10),
    ('title', 10),
    ('primary_language', 10),
    ('year', 15),
    ('assigned_genre', 10),
    ('assigned_format', 10),
    ('release_date', 10),
    ('duration_hours', 10),
    ('age_rating', 5),
    ('source', 5),
    ('dubbing', 5),
]

MAX_QUALITY_SCORE = 100

if sum(weight for _, weight in QUALITY_WEIGHTS) != MAX_QUALITY_SCORE:
    raise RuntimeError(f"Quality weights must sum to {MAX_QUALITY_SCORE}")

# Fields needed to score a record
QUALITY_FIELDS = [
    'id', 'platform', 'title', 'primary_language', 'year', 'assigned_genre',
    'assigned_format', 'release_date', 'duration_hours', 'age_rating',
    'source', 'total_dubbings'
]

FRESHNESS_FIELDS = ['platform', 'year', 'release_date']


def _has_text(value) -> bool:
    return value is not None and len(str(value).strip()) > 0


def _quality_checks(record: Dict[str, Any]) -> Dict[str, bool]:
    year = record.get('year')
    duration = record.get('duration_hours')
    return {
        'platform': _has_text(record.get('platform')),
        'title': _has_text(record.get('title')),
        'primary_language': _has_text(record.get('primary_language')),
        'year': year is not None and year >= MIN_YEAR,
        'assigned_genre': _has_text(record.get('assigned_genre')),
        'assigned_format': _has_text(record.get('assigned_format')),
        'release_date': record.get('release_date') is not None,
        'duration_hours': duration is not None and duration >= 0,
        'age_rating': _has_text(record.get('age_rating')),
        'source': _has_text(record.get('source')),
        'dubbing': (record.get('total_dubbings') or 0) > 0,
    }


def score_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Score one record.

    Returns:
        {"score": int in [0, 100], "missing_fields": [field, ...]}
    """
    checks = _quality_checks(record)
    score = 0
    missing = []
    for field, weight in QUALITY_WEIGHTS:
        if checks[field]:
            score += weight
        else:
            missing.append(field)
    return {'score': score, 'missing_fields': missing}


def effective_release_date(record: Dict[str, Any]) -> Optional[date]:
    """Release date, or January 1 of the release year when the date is unknown"""
    release_date = parse_date(record.get('release_date'))
    if release_date is not None:
        return release_date
    year = record.get('year')
    if year:
        return date(int(year), 1, 1)
    return None


def freshness_of(record: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
    Freshness flags of one record at a fixed evaluation time.

    age_days is never negative: future releases count as released today.
    """
    released = effective_release_date(record)
    if released is None:
        age_days = None
    else:
        age_days = max(0, (now - datetime.combine(released, time.min)).days)

    result = {'age_days': age_days, 'is_this_year': record.get('year') == now.year}
    for window in FRESHNESS_WINDOWS:
        result[f'last{window}'] = age_days is not None and age_days <= window
    return result


def _average(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def summarize_freshness(records: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Overall and per-platform freshness; platforms sorted by avg_age_days ascending"""
    now = now or datetime.now()
    overall = {'total': 0, 'ages': [], 'last7': 0, 'last30': 0, 'last90': 0, 'released_this_year': 0}
    platforms = {}

    for record in records:
        fresh = freshness_of(record, now)
        platform = platforms.setdefault(record.get('platform'), {
            'total': 0, 'ages': [], 'last30': 0, 'last90': 0, 'released_this_year': 0
        })
        for bucket in (overall, platform):
            bucket['total'] += 1
            if fresh['age_days'] is not None:
                bucket['ages'].append(fresh['age_days'])
            bucket['last30'] += fresh['last30']
            bucket['last90'] += fresh['last90']
            bucket['released_this_year'] += fresh['is_this_year']
        overall['last7'] += fresh['last7']

    ages = overall.pop('ages')
    overall.update({
        'avg_age_days': _average(ages) or 0,
        'min_age_days': min(ages) if ages else 0,
        'max_age_days': max(ages) if ages else 0,
    })

    by_platform = []
    for name, stats in platforms.items():
        platform_ages = stats.pop('ages')
        by_platform.append({'platform': name, 'avg_age_days': _average(platform_ages) or 0, **stats})
    by_platform.sort(key=lambda item: item['avg_age_days'])

    logger.debug(f"Freshness computed for {overall['total']} records")
    return {'overall': overall, 'by_platform': by_platform}


def summarize_quality(records: List[Dict[str, Any]], boundaries: List[int], labels: List[str],
                      sample_limit: int, low_score: int = 60) -> Dict[str, Any]:
    """
    Overall score statistics, score distribution, per-platform averages,
    missing-field tally and the lowest scoring samples.
    """
    scored = []
    for record in records:
        result = score_record(record)
        scored.append({**result, 'id': record.get('id'), 'title': record.get('title'),
                       'platform': record.get('platform')})

    scores = [item['score'] for item in scored]
    overall = {
        'total': len(scored),
        'avg_score': _average(scores) or 0,
        'min_score': min(scores) if scores else 0,
        'max_score': max(scores) if scores else 0,
    }

    distribution_counts = {}
    for score in scores:
        label = bucket_label(assign_bucket(score, boundaries), boundaries, 'other', labels)
        distribution_counts[label] = distribution_counts.get(label, 0) + 1
    distribution = [{'range': label, 'count': distribution_counts[label]}
                    for label in labels + ['other'] if label in distribution_counts]

    platforms = {}
    for item in scored:
        platforms.setdefault(item['platform'], []).append(item['score'])
    by_platform = sorted(
        ({'platform': name, 'avg_score': _average(values), 'total': len(values)} for name, values in platforms.items()),
        key=lambda item: item['avg_score']
    )

    missing_tally = {field: 0 for field, _ in QUALITY_WEIGHTS}
    for item in scored:
        for field in item['missing_fields']:
            missing_tally[field] += 1

    low_quality = sorted((item for item in scored if item['score'] < low_score), key=lambda item: item['score'])

    return {
        'overall': overall,
        'distribution': distribution,
        'by_platform': by_platform,
        'top_issues': missing_tally,
        'low_quality_samples': low_quality[:sample_limit],
    }

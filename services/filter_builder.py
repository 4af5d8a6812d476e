#!/usr/bin/env python3
"""
Analytics Filter Builder
Turns request parameters into filters and aggregation pipelines
for universal_db_aggregator.

Filters use the aggregator vocabulary: {field: value} for equality or
{field: {operator: value}} where operator is one of eq, ne, gt, gte, lt, lte,
like, in, not_in, is_null, is_blank. Dubbing flags are addressed as
"dubbing.<language>".

Pipelines are lists of single-key stages:
    {"match": filters}
    {"group": {"by": {output_name: field}, "metrics": [metric, ...]}}
    {"sort": {field: "asc" | "desc"}}
    {"skip": n}, {"limit": n}
    {"bucket": {"field": f, "boundaries": [...], "default": label}}
    {"facet": {name: sub_pipeline}}

Parameter parsing is fail-soft: values that cannot be parsed are treated as
absent and never raise.
"""

import logging
import re
from datetime import date, datetime
from typing import Dict, Any, Optional, Union, List, Iterable

from config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from filter_configs.filter_configs import PARAM_ALIASES, resolve_dimension
from models.content import DUBBING_LANGUAGES

logger = logging.getLogger(__name__)

# Metrics callers can request by name
NAMED_METRICS = {
    'count': {'type': 'count', 'as': 'count'},
    'avgDuration': {'type': 'avg', 'field': 'duration_hours', 'as': 'avg_duration'},
    'totalDuration': {'type': 'sum', 'field': 'duration_hours', 'as': 'total_duration'},
    'minDuration': {'type': 'min', 'field': 'duration_hours', 'as': 'min_duration'},
    'maxDuration': {'type': 'max', 'field': 'duration_hours', 'as': 'max_duration'},
    'avgDubbings': {'type': 'avg', 'field': 'total_dubbings', 'as': 'avg_dubbings'},
    'minYear': {'type': 'min', 'field': 'year', 'as': 'min_year'},
    'maxYear': {'type': 'max', 'field': 'year', 'as': 'max_year'},
    'dubbedContent': {'type': 'count_if', 'field': 'total_dubbings', 'op': 'gt', 'value': 0, 'as': 'dubbed'},
    'formatCount': {'type': 'distinct', 'field': 'assigned_format', 'as': 'format_count'},
    'genreCount': {'type': 'distinct', 'field': 'assigned_genre', 'as': 'genre_count'},
    'languageCount': {'type': 'distinct', 'field': 'primary_language', 'as': 'language_count'},
    'platformCount': {'type': 'distinct', 'field': 'platform', 'as': 'platform_count'},
}

# Metrics whose field must be non-null before grouping
NON_NULL_METRICS = {
    'avgDuration': 'duration_hours',
    'totalDuration': 'duration_hours',
    'minDuration': 'duration_hours',
    'maxDuration': 'duration_hours',
}

# Parameters echoed back as "filters" in analytics responses
FILTER_PARAM_NAMES = [
    'platform', 'type', 'format', 'year', 'start_year', 'end_year', 'start_date',
    'end_date', 'genre', 'language', 'region', 'age_rating', 'source',
    'min_duration', 'max_duration', 'min_seasons', 'max_seasons',
    'min_popularity', 'max_popularity', 'has_dubbing', 'dubbing_language',
    'group_by', 'sort_by', 'sort_order', 'page', 'limit'
]

# Widest "start-end" year range that is expanded into a list
MAX_YEAR_SPAN = 200

_TRUE_VALUES = {'true', '1', 'yes'}
_FALSE_VALUES = {'false', '0', 'no'}


# --- Parameter helpers ---

def to_list(value) -> List[str]:
    """Split comma-separated values (or a list of them) into trimmed, non-empty strings"""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = []
        for item in value:
            items.extend(to_list(item))
        return items
    return [part.strip() for part in str(value).split(',') if part.strip()]

def to_title_case(value: str) -> str:
    """'prime video' -> 'Prime Video', 'MOVIE' -> 'Movie'"""
    return ' '.join(word[:1].upper() + word[1:] for word in str(value).lower().split(' ') if word)

def to_snake_case(name: str) -> str:
    """'avgDuration' -> 'avg_duration'"""
    return re.sub(r'(?<!^)([A-Z])', r'_\1', str(name)).lower()

def parse_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        # Accept "2020.0" but not "abc"
        number = parse_float(value)
        return int(number) if number is not None else None

def parse_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    # NaN and infinities never make a usable bound
    if number != number or number in (float('inf'), float('-inf')):
        return None
    return number

def parse_bool(value) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None

def parse_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug(f"Ignoring unparseable date: {value!r}")
        return None

def normalize_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Map camelCase aliases to snake_case names and drop empty values"""
    normalized = {}
    for key, value in (params or {}).items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        name = PARAM_ALIASES.get(key, key)
        # An explicit snake_case parameter wins over its alias
        if name in normalized and key != name:
            continue
        normalized[name] = value
    return normalized


class AnalyticsFilterBuilder:
    """Filter and pipeline builder for catalog analytics"""

    def __init__(self, model_class):
        self.model_class = model_class
        self.filters = {}
        logger.debug(f"Initialized AnalyticsFilterBuilder for {model_class.__name__}")

    def build_from_params(self, params: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build filters from request parameters using configuration

        Args:
            params: Request parameters (camelCase aliases accepted)
            config: Filter configuration

        Returns:
            Dict of filters ready for universal_db_aggregator
        """
        params = normalize_params(params)
        logger.debug(f"Building filters from params: {list(params.keys())}")

        # Soft-deleted rows are never visible to analytics
        if hasattr(self.model_class, 'is_active'):
            self.filters['is_active'] = True

        # Process exact matches
        for field in config.get('exact', []):
            if field in params and params[field] is not None:
                self.add_exact(field, params[field])

        # Process list matches
        for field, param in config.get('list', []):
            if params.get(param) is not None:
                self.add_list(field, params[param])

        # Process title-cased list matches
        for field, param_names in config.get('title_case', []):
            for param in param_names:
                if params.get(param) is not None:
                    self.add_title_case_list(field, params[param])
                    break

        # Process range filters
        for field_config in config.get('range', []):
            field, min_param, max_param = field_config[:3]
            cast = field_config[3] if len(field_config) > 3 else float
            min_val = params.get(min_param)
            max_val = params.get(max_param)
            if min_val is not None or max_val is not None:
                self.add_range(field, min_val, max_val, cast=cast)

        # Process date range filters
        for field, after_param, before_param in config.get('date_range', []):
            after_val = params.get(after_param)
            before_val = params.get(before_param)
            if after_val is not None or before_val is not None:
                self.add_date_range(field, after_val, before_val)

        # Process custom filters
        for custom_filter in config.get('custom', []):
            if callable(custom_filter):
                custom_filter(self, params)

        logger.debug(f"Built filters: {self.filters}")
        return self.filters

    def add_exact(self, field: str, value: Any) -> 'AnalyticsFilterBuilder':
        """Add exact match filter"""
        if value is not None:
            self.filters[field] = value
            logger.debug(f"Added exact filter: {field} = {value}")
        return self

    def add_list(self, field: str, value: Any, exclude_blank: bool = False) -> 'AnalyticsFilterBuilder':
        """Add list filter: one value means equality, several mean IN"""
        values = to_list(value)
        if values:
            if len(values) == 1:
                condition = {'eq': values[0]}
            else:
                condition = {'in': values}
            if exclude_blank:
                condition['is_blank'] = False
                self._merge(field, condition)
            else:
                self.filters[field] = values[0] if len(values) == 1 else condition
            logger.debug(f"Added list filter: {field} -> {values}")
        return self

    def add_title_case_list(self, field: str, value: Any) -> 'AnalyticsFilterBuilder':
        """Add list filter with every token normalized to Title Case"""
        return self.add_list(field, [to_title_case(v) for v in to_list(value)])

    def add_range(self, field: str, min_val: Optional[Union[int, float, str]], max_val: Optional[Union[int, float, str]],
                  cast=float) -> 'AnalyticsFilterBuilder':
        """Add range filter (min/max values); unparseable bounds are ignored"""
        parse = parse_int if cast is int else parse_float
        bounds = {}
        low = parse(min_val)
        high = parse(max_val)
        if low is not None:
            bounds["gte"] = low
            logger.debug(f"Added range filter: {field} >= {low}")
        if high is not None:
            bounds["lte"] = high
            logger.debug(f"Added range filter: {field} <= {high}")
        if bounds:
            self._merge(field, bounds)
        return self

    def add_date_range(self, field: str, after: Optional[str], before: Optional[str]) -> 'AnalyticsFilterBuilder':
        """Add inclusive date range filter"""
        bounds = {}
        start = parse_date(after)
        end = parse_date(before)
        if start is not None:
            bounds["gte"] = start
            logger.debug(f"Added date range filter: {field} >= {start}")
        if end is not None:
            bounds["lte"] = end
            logger.debug(f"Added date range filter: {field} <= {end}")
        if bounds:
            self._merge(field, bounds)
        return self

    def add_year(self, year: Any = None, start_year: Any = None, end_year: Any = None) -> 'AnalyticsFilterBuilder':
        """
        Add year filter.

        ``year`` may be a single year, an inclusive "start-end" range, a
        comma list or a list of any of these (a repeated query parameter).
        A lone range becomes gte/lte bounds. Closed ranges mixed with other
        tokens are expanded into the year list; an open range cannot be, so
        the whole value is ignored with a warning. ``start_year``/``end_year``
        intersect with the result: bounds only ever narrow an existing range.
        """
        condition = {}
        ranges, years = [], []
        for token in to_list(year):
            if '-' in token:
                start, _, end = token.partition('-')
                bounds = (parse_int(start), parse_int(end))
                if bounds != (None, None):
                    ranges.append(bounds)
                    continue
            value = parse_int(token)
            if value is None:
                logger.debug(f"Ignoring unparseable year: {token!r}")
            else:
                years.append(value)

        if len(ranges) == 1 and not years:
            low, high = ranges[0]
            if low is not None:
                condition['gte'] = low
            if high is not None:
                condition['lte'] = high
        elif ranges:
            if any(low is None or high is None or high - low > MAX_YEAR_SPAN for low, high in ranges):
                logger.warning(f"Ignoring year filter {year!r}: an open or oversized range "
                               f"cannot be combined with other years")
            else:
                for low, high in ranges:
                    years.extend(range(low, high + 1))
                condition['in'] = sorted(set(years))
        elif years:
            condition['in'] = years

        low = parse_int(start_year)
        high = parse_int(end_year)
        if low is not None:
            condition['gte'] = max(condition['gte'], low) if 'gte' in condition else low
        if high is not None:
            condition['lte'] = min(condition['lte'], high) if 'lte' in condition else high

        if condition:
            self._merge('year', condition)
            logger.debug(f"Added year filter: {self.filters['year']}")
        return self

    def add_has_dubbing(self, value: Any) -> 'AnalyticsFilterBuilder':
        """true => total_dubbings > 0 (keeps other bounds); false => exactly 0"""
        flag = parse_bool(value)
        if flag is None:
            if value is not None:
                logger.debug(f"Ignoring unrecognised has_dubbing value: {value!r}")
            return self
        if flag:
            self._merge('total_dubbings', {'gt': 0})
        else:
            self.filters['total_dubbings'] = {'eq': 0}
        logger.debug(f"Added dubbing filter: total_dubbings = {self.filters['total_dubbings']}")
        return self

    def add_dubbing_languages(self, value: Any) -> 'AnalyticsFilterBuilder':
        """Require every named language to be dubbed"""
        for language in to_list(value):
            key = language.lower()
            if key not in DUBBING_LANGUAGES:
                logger.warning(f"Unknown dubbing language ignored: {language}")
                continue
            self.filters[f"dubbing.{key}"] = True
            logger.debug(f"Added dubbing language filter: {key}")
        return self

    def exclude_blank(self, field: str) -> 'AnalyticsFilterBuilder':
        """Exclude NULL and empty-string values of a field"""
        return self._merge(field, {'is_blank': False})

    def add_custom(self, field: str, filter_dict: Dict[str, Any]) -> 'AnalyticsFilterBuilder':
        """Add custom filter dictionary"""
        if filter_dict:
            self._merge(field, filter_dict)
            logger.debug(f"Added custom filter: {field} = {self.filters[field]}")
        return self

    def _merge(self, field: str, condition: Dict[str, Any]) -> 'AnalyticsFilterBuilder':
        """Merge operators into the condition of a field without dropping existing ones"""
        existing = self.filters.get(field)
        if existing is None:
            self.filters[field] = dict(condition)
        elif isinstance(existing, dict):
            merged = dict(existing)
            for operator, value in condition.items():
                if operator == 'gte' and 'gte' in merged:
                    merged['gte'] = max(merged['gte'], value)
                elif operator == 'lte' and 'lte' in merged:
                    merged['lte'] = min(merged['lte'], value)
                else:
                    merged[operator] = value
            self.filters[field] = merged
        else:
            self.filters[field] = {'eq': existing, **condition}
        return self

    def get_filters(self) -> Dict[str, Any]:
        """Get built filters"""
        return self.filters

    # --- Pipeline assembly ---

    @staticmethod
    def build_group_by(dimensions: Union[str, Iterable[str], Dict[str, str]]) -> Dict[str, str]:
        """
        Build group key: {output_name: field}.

        Accepts a single dimension, a list of dimensions or an explicit
        mapping such as {"primary": "platform", "secondary": "genre"}.
        Friendly names (genre, type, language) resolve to column names.
        """
        if isinstance(dimensions, dict):
            return {name: resolve_dimension(field) for name, field in dimensions.items()}
        names = to_list(dimensions)
        return {to_snake_case(name): resolve_dimension(name) for name in names}

    @staticmethod
    def build_metrics(names: Iterable[str]):
        """Resolve metric names to specs; returns (metrics, fields that must be non-null)"""
        metrics = []
        non_null_fields = []
        for name in names:
            spec = NAMED_METRICS.get(name) or NAMED_METRICS.get(to_snake_case(name))
            if spec is None:
                logger.warning(f"Unknown metric ignored: {name}")
                continue
            if spec not in metrics:
                metrics.append(spec)
            field = NON_NULL_METRICS.get(name)
            if field and field not in non_null_fields:
                non_null_fields.append(field)
        if not metrics:
            metrics.append(NAMED_METRICS['count'])
        return metrics, non_null_fields

    @staticmethod
    def build_sort(sort_by: Optional[str] = 'count', sort_order: Optional[str] = 'desc') -> Dict[str, str]:
        """Sort stage body; defaults to descending count"""
        field = to_snake_case(sort_by) if sort_by else 'count'
        order = 'asc' if str(sort_order or 'desc').lower() == 'asc' else 'desc'
        return {field: order}

    @staticmethod
    def build_pagination(page: Any = 1, limit: Any = DEFAULT_PAGE_LIMIT) -> Dict[str, int]:
        """Clamp page to >= 1 and limit to [1, MAX_PAGE_LIMIT]; garbage falls back to defaults"""
        page_num = parse_int(page)
        limit_num = parse_int(limit)
        page_num = max(1, page_num if page_num is not None else 1)
        limit_num = min(MAX_PAGE_LIMIT, max(1, limit_num if limit_num is not None else DEFAULT_PAGE_LIMIT))
        return {
            'page': page_num,
            'skip': (page_num - 1) * limit_num,
            'limit': limit_num
        }

    @staticmethod
    def build_bucket(field: str, boundaries: List[Union[int, float]], default: str, labels: Optional[List[str]] = None) -> Dict[str, Any]:
        """Bucket stage: bucket i spans [boundaries[i], boundaries[i+1]); everything else is ``default``"""
        stage = {'field': field, 'boundaries': list(boundaries), 'default': default}
        if labels:
            stage['labels'] = list(labels)
        return {'bucket': stage}

    @staticmethod
    def build_facets(dimensions: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        """One count-per-value sub-pipeline per dimension, keyed by the friendly name"""
        facets = {}
        for dimension in to_list(dimensions):
            facets[dimension] = [
                {'group': {'by': {to_snake_case(dimension): resolve_dimension(dimension)},
                           'metrics': [NAMED_METRICS['count']]}},
                {'sort': {'count': 'desc'}}
            ]
        return facets

    def build_pipeline(
        self,
        group_by: Union[str, Iterable[str], Dict[str, str]],
        metrics: Iterable[str] = ('count',),
        sort: Optional[Dict[str, str]] = None,
        pagination: Optional[Dict[str, int]] = None,
        require_non_null: bool = True
    ) -> List[Dict[str, Any]]:
        """
        Assemble match -> [pre-group match] -> group -> sort -> [skip, limit]
        over the filters built so far.
        """
        metric_specs, non_null_fields = self.build_metrics(metrics)
        pipeline = [{'match': dict(self.filters)}]
        if require_non_null and non_null_fields:
            pipeline.append({'match': {field: {'is_null': False} for field in non_null_fields}})
        pipeline.append({'group': {'by': self.build_group_by(group_by), 'metrics': metric_specs}})
        pipeline.append({'sort': sort or {'count': 'desc'}})
        if pagination:
            pipeline.append({'skip': pagination['skip']})
            pipeline.append({'limit': pagination['limit']})
        logger.debug(f"Built pipeline: {pipeline}")
        return pipeline

    @staticmethod
    def parse_query_params(query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Normalize request parameters and fill sorting defaults"""
        params = normalize_params(query)
        params.setdefault('sort_by', 'count')
        params.setdefault('sort_order', 'desc')
        return params

    @staticmethod
    def applied_filters(params: Dict[str, Any]) -> Dict[str, Any]:
        """Subset of parameters echoed back to the caller"""
        return {name: params[name] for name in FILTER_PARAM_NAMES if params.get(name) is not None}


def build_filters(model_class, params: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convenience function to build filters

    Args:
        model_class: SQLAlchemy model class
        params: Request parameters
        config: Filter configuration

    Returns:
        Dict of filters ready for universal_db_aggregator
    """
    builder = AnalyticsFilterBuilder(model_class)
    return builder.build_from_params(params, config)

#!/usr/bin/env python3
"""
Filter Configurations
Declarative filter definitions for the catalog endpoints
"""

# camelCase query parameters accepted alongside their snake_case names
PARAM_ALIASES = {
    'startYear': 'start_year',
    'endYear': 'end_year',
    'startDate': 'start_date',
    'endDate': 'end_date',
    'ageRating': 'age_rating',
    'minDuration': 'min_duration',
    'maxDuration': 'max_duration',
    'minSeasons': 'min_seasons',
    'maxSeasons': 'max_seasons',
    'minPopularity': 'min_popularity',
    'maxPopularity': 'max_popularity',
    'hasDubbing': 'has_dubbing',
    'dubbingLanguage': 'dubbing_language',
    'groupBy': 'group_by',
    'secondaryGroupBy': 'secondary_group_by',
    'sortBy': 'sort_by',
    'sortOrder': 'sort_order',
    'compareBy': 'compare_by',
    'aggregationType': 'aggregation_type',
}

# Friendly dimension names used by grouping/faceting parameters
DIMENSION_FIELDS = {
    'platform': 'platform',
    'genre': 'assigned_genre',
    'language': 'primary_language',
    'type': 'assigned_format',
    'format': 'assigned_format',
    'source': 'source',
    'ageRating': 'age_rating',
    'age_rating': 'age_rating',
    'year': 'year',
}

# Filter configurations for different endpoints
FILTER_CONFIGS = {
    'content': {
        # (field, parameter): comma list, one value => equality, several => IN
        'list': [
            ('platform', 'platform'),
            ('primary_language', 'language'),
            ('age_rating', 'age_rating'),
            ('source', 'source'),
        ],
        # (field, parameters): values are Title Cased before matching
        'title_case': [
            ('assigned_format', ('type', 'format')),
        ],
        'range': [
            ('duration_hours', 'min_duration', 'max_duration', float),
            ('seasons', 'min_seasons', 'max_seasons', int),
            # Popularity uses the dubbing count as a proxy
            ('total_dubbings', 'min_popularity', 'max_popularity', int),
        ],
        'date_range': [
            ('release_date', 'start_date', 'end_date'),
        ],
        # Custom filters run last, in order; has_dubbing must follow the popularity range
        'custom': [
            lambda builder, params: builder.add_list('assigned_genre', params.get('genre'), exclude_blank=True)
            if params.get('genre') else None,
            # Region is an alias for language when language is not given
            lambda builder, params: builder.add_list('primary_language', params.get('region'))
            if params.get('region') and not params.get('language') else None,
            lambda builder, params: builder.add_year(params.get('year'), params.get('start_year'), params.get('end_year')),
            lambda builder, params: builder.add_has_dubbing(params.get('has_dubbing')),
            lambda builder, params: builder.add_dubbing_languages(params.get('dubbing_language')),
        ]
    },

    'content_list': {
        'list': [
            ('platform', 'platform'),
            ('assigned_genre', 'genre'),
            ('primary_language', 'language'),
        ],
        'custom': [
            lambda builder, params: builder.add_year(params.get('year')),
        ]
    },

    'activities': {
        'list': [
            ('action', 'action'),
        ],
        'exact': [
            'user_id',
        ],
        'date_range': [
            ('created_at', 'start_date', 'end_date'),
        ]
    }
}

# Field validation mappings
VALID_FIELDS = {
    'content': [
        'id', 'platform', 'title', 'self_declared_genre', 'assigned_genre',
        'primary_language', 'self_declared_format', 'assigned_format', 'year',
        'release_date', 'seasons', 'episodes', 'duration_hours', 'source',
        'total_dubbings', 'age_rating', 'created_by', 'created_at', 'updated_at'
    ]
}

def get_filter_config(endpoint_name: str) -> dict:
    """Get filter configuration for endpoint"""
    return FILTER_CONFIGS.get(endpoint_name, {})

def get_valid_fields(endpoint_name: str) -> list:
    """Get valid fields for endpoint"""
    return VALID_FIELDS.get(endpoint_name, [])

def resolve_dimension(name: str) -> str:
    """Map a friendly dimension name (genre, type, ...) to its column name"""
    return DIMENSION_FIELDS.get(name, name)

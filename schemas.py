"""
Pydantic request schemas.

Input accepts both snake_case and camelCase keys; unknown keys (including a
supplied total_dubbings) are ignored.
"""
import re
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from models.content import DUBBING_LANGUAGES, SOURCES, AGE_RATINGS, MIN_YEAR, MAX_YEAR, TITLE_MAX_LENGTH
from models.user import USER_ROLES
from services.exceptions import ContentValidationError

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_OPTIONAL_FIELDS = (
    'self_declared_genre', 'assigned_genre', 'self_declared_format', 'assigned_format',
    'release_date', 'episodes', 'duration_hours'
)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_choice(value, allowed, name):
    if value is not None and value not in allowed:
        raise ValueError(f'{name} must be one of: {", ".join(allowed)}')
    return value


def _normalize_dubbing(value):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError('dubbing must be an object of language -> bool')
    flags = {}
    for language, flag in value.items():
        key = str(language).strip().lower()
        if key in DUBBING_LANGUAGES:
            flags[key] = flag
    return flags


class _ContentFields(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore'
    )

    @field_validator(*_OPTIONAL_FIELDS, mode='before', check_fields=False)
    @classmethod
    def empty_string_is_missing(cls, v):
        return _blank_to_none(v)

    @field_validator('dubbing', mode='before', check_fields=False)
    @classmethod
    def validate_dubbing(cls, v):
        return _normalize_dubbing(v)

    @field_validator('source', check_fields=False)
    @classmethod
    def validate_source(cls, v):
        return _check_choice(v, SOURCES, 'Source')

    @field_validator('age_rating', check_fields=False)
    @classmethod
    def validate_age_rating(cls, v):
        return _check_choice(v, AGE_RATINGS, 'Age rating')


class ContentCreate(_ContentFields):
    """New catalog record."""
    platform: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    self_declared_genre: Optional[str] = None
    assigned_genre: Optional[str] = None
    primary_language: str = Field(min_length=1)
    self_declared_format: Optional[str] = None
    assigned_format: Optional[str] = None
    year: int = Field(ge=MIN_YEAR, le=MAX_YEAR)
    release_date: Optional[date] = None
    seasons: Optional[int] = Field(default=1, ge=0)
    episodes: Optional[int] = Field(default=None, ge=0)
    duration_hours: Optional[float] = Field(default=None, ge=0)
    source: str = 'TBD'
    dubbing: Dict[str, bool] = Field(default_factory=dict)
    age_rating: str = 'Not Rated'


class ContentUpdate(_ContentFields):
    """Partial update; only fields present in the request are applied."""
    platform: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    self_declared_genre: Optional[str] = None
    assigned_genre: Optional[str] = None
    primary_language: Optional[str] = Field(default=None, min_length=1)
    self_declared_format: Optional[str] = None
    assigned_format: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=MIN_YEAR, le=MAX_YEAR)
    release_date: Optional[date] = None
    seasons: Optional[int] = Field(default=None, ge=0)
    episodes: Optional[int] = Field(default=None, ge=0)
    duration_hours: Optional[float] = Field(default=None, ge=0)
    source: Optional[str] = None
    dubbing: Optional[Dict[str, bool]] = None
    age_rating: Optional[str] = None


class DuplicateCheck(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    platform: str = Field(min_length=1)
    title: str = Field(min_length=1)
    year: int
    exclude_id: Optional[int] = Field(default=None, alias='excludeId')


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=30)
    email: str
    role: str = 'user'

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if not _EMAIL_PATTERN.match(v):
            raise ValueError('Email must be a valid address')
        return v.lower()

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        return _check_choice(v, USER_ROLES, 'Role')


class RoleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    role: str

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        return _check_choice(v, USER_ROLES, 'Role')


class BulkRoleUpdate(RoleUpdate):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    user_ids: List[int] = Field(min_length=1, alias='userIds')


class BulkStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: List[int] = Field(min_length=1, alias='userIds')
    set_active: StrictBool = Field(alias='setActive')


def parse_payload(schema_class, data, **dump_options):
    """Validate request data; raises ContentValidationError with per-field details"""
    try:
        model = schema_class.model_validate(data or {})
    except ValidationError as e:
        details = [
            {'field': '.'.join(str(part) for part in error['loc']), 'message': error['msg']}
            for error in e.errors()
        ]
        raise ContentValidationError('Validation error', details=details) from e
    return model.model_dump(**dump_options)

#!/usr/bin/env python3
"""
Content CSV Import Service
Bulk-loads catalog records from the platform spreadsheet layout
"""

import csv
import logging
from typing import Dict, List, Optional, Any, Iterable

from config import CSV_ENCODING
from schemas import ContentCreate, parse_payload
from models.content import Content, DUBBING_LANGUAGES
from services.activity_service import acting_user, log_activity
from services.content_service import check_duplicate
from services.exceptions import ContentValidationError
from services.filter_builder import parse_int, parse_float, parse_date
from utils.decorators import with_session

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = ['Platform', 'Title', 'Year']

# Spreadsheet header -> content field, in file order (dubbing columns follow "Source")
FIELD_HEADERS = [
    ('Platform', 'platform'),
    ('Title', 'title'),
    ('Self Declared Genre', 'self_declared_genre'),
    ('Assigned Genre', 'assigned_genre'),
    ('Primary Language', 'primary_language'),
    ('Self Declared Format', 'self_declared_format'),
    ('Assigned Format', 'assigned_format'),
    ('Year', 'year'),
    ('Release Date', 'release_date'),
    ('Seasons', 'seasons'),
    ('Episodes', 'episodes'),
    ('Duration (hours)', 'duration_hours'),
    ('Source', 'source'),
]

DUBBING_HEADERS = {
    'tamil': 'Tamil dub',
    'telugu': 'Telugu dub',
    'kannada': 'Kannada dub',
    'malayalam': 'Malayalam dub',
    'hindi': 'Hindi dub',
    'punjabi': 'Punjabi dub',
    'bengali': 'Bengali dub',
    'marathi': 'Marathi dub',
    'bhojpuri': 'Bhojpuri dub',
    'gujarati': 'Gujarati dub',
    'english': 'English Dub',
    'haryanvi': 'Haryanvi Dub',
    'rajasthani': 'Rajasthani Dub',
    'deccani': 'Deccani Dub',
    'arabic': 'Arabic Dub',
}

AGE_RATING_HEADER = 'Age Ratings'

CSV_HEADERS = (
    [header for header, _ in FIELD_HEADERS]
    + [DUBBING_HEADERS[language] for language in DUBBING_LANGUAGES]
    + [AGE_RATING_HEADER]
)


def _text(row: Dict[str, str], header: str) -> Optional[str]:
    value = row.get(header)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _dubbed(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in ('1', 'true')


def _or_default(value, default):
    # 0 is a real value, only a missing one falls back
    return default if value is None else value


def map_csv_row(row: Dict[str, str]) -> Dict[str, Any]:
    """
    Map one spreadsheet row to content fields.

    Numbers and dates that fail to parse become empty; missing language,
    source, age rating and seasons fall back to their defaults.
    """
    platform = _text(row, 'Platform')
    title = _text(row, 'Title')
    year = parse_int(_text(row, 'Year'))
    if not platform or not title or not year:
        raise ContentValidationError('Platform, Title, and Year are required fields')

    return {
        'platform': platform,
        'title': title,
        'self_declared_genre': _text(row, 'Self Declared Genre'),
        'assigned_genre': _text(row, 'Assigned Genre'),
        'primary_language': _text(row, 'Primary Language') or 'Other',
        'self_declared_format': _text(row, 'Self Declared Format'),
        'assigned_format': _text(row, 'Assigned Format'),
        'year': year,
        'release_date': parse_date(_text(row, 'Release Date')),
        'seasons': _or_default(parse_int(_text(row, 'Seasons')), 1),
        'episodes': parse_int(_text(row, 'Episodes')),
        'duration_hours': parse_float(_text(row, 'Duration (hours)')),
        'source': _text(row, 'Source') or 'TBD',
        'dubbing': {language: _dubbed(row.get(header)) for language, header in DUBBING_HEADERS.items()},
        'age_rating': _text(row, AGE_RATING_HEADER) or 'Not Rated',
    }


def check_headers(headers: Iterable[str]) -> Dict[str, Any]:
    """Report missing required headers and headers the importer does not know"""
    headers = [h.strip() for h in headers or []]
    missing = [h for h in REQUIRED_HEADERS if h not in headers]
    return {
        'is_valid': not missing,
        'headers': headers,
        'missing_required': missing,
        'extra_headers': [h for h in headers if h not in CSV_HEADERS]
    }


def generate_template() -> Dict[str, List]:
    """Header row plus one sample row"""
    sample = {
        'Platform': 'Netflix', 'Title': 'Sample Movie', 'Self Declared Genre': 'Action',
        'Assigned Genre': 'Action', 'Primary Language': 'English', 'Self Declared Format': 'Movie',
        'Assigned Format': 'Movie', 'Year': '2023', 'Release Date': '2023-01-01', 'Seasons': '1',
        'Episodes': '1', 'Duration (hours)': '2.5', 'Source': 'In-House',
        DUBBING_HEADERS['hindi']: '1', DUBBING_HEADERS['english']: '1', AGE_RATING_HEADER: 'U/A 13+',
    }
    return {'headers': CSV_HEADERS, 'sample_data': [CSV_HEADERS, [sample.get(h, '0') for h in CSV_HEADERS]]}


class ContentCsvImporter:
    """Class for importing catalog records from CSV"""

    def __init__(self, user_id: Optional[int] = None):
        self.user_id = user_id
        logger.info("Initializing ContentCsvImporter")

    def import_file(self, file_path: str) -> Dict[str, Any]:
        """Import a CSV file from disk"""
        logger.info(f"Importing content from {file_path}")
        with open(file_path, newline='', encoding=CSV_ENCODING) as f:
            return self.import_rows(csv.DictReader(f), source=file_path)

    @with_session
    def import_rows(self, reader: Iterable[Dict[str, str]], source: str = 'upload', session=None) -> Dict[str, Any]:
        """
        Import rows; duplicates (also within the same file) are skipped and
        invalid rows are collected with their row number.

        Returns:
            {"processed", "duplicates", "errors", "error_details"}
        """
        acting_user(session, self.user_id)

        headers = getattr(reader, 'fieldnames', None)
        if headers is not None:
            header_check = check_headers(headers)
            if not header_check['is_valid']:
                raise ContentValidationError(
                    f"Missing required headers: {', '.join(header_check['missing_required'])}",
                    details=header_check['missing_required']
                )

        stats = {'processed': 0, 'duplicates': 0, 'errors': 0, 'error_details': []}
        for row_number, row in enumerate(reader, start=1):
            try:
                payload = parse_payload(ContentCreate, map_csv_row(row))
            except ContentValidationError as e:
                stats['errors'] += 1
                stats['error_details'].append({'row': row_number, 'error': str(e), 'details': e.details})
                logger.warning(f"[CSV Error] Row {row_number}: {e}")
                continue

            if check_duplicate(payload['platform'], payload['title'], payload['year'], session=session):
                stats['duplicates'] += 1
                continue

            dubbing = payload.pop('dubbing')
            content = Content(created_by=self.user_id, is_active=True, **payload)
            content.dubbing = dubbing
            session.add(content)
            # Flush so later rows of the same file see this one as a duplicate
            session.flush()
            stats['processed'] += 1

        log_activity(session, self.user_id, 'import', {
            'source': source,
            'processed': stats['processed'],
            'duplicates': stats['duplicates'],
            'errors': stats['errors']
        })
        session.commit()
        logger.info(f"Import finished: {stats['processed']} processed, "
                    f"{stats['duplicates']} duplicates, {stats['errors']} errors")
        return stats

import csv
import io
import json

import pytest

from services.content_export import ContentExporter, content_to_csv_row, render_csv
from services.content_import import (
    CSV_HEADERS, ContentCsvImporter, check_headers, generate_template, map_csv_row,
)
from services.content_service import list_content
from services.activity_service import list_activities
from services.exceptions import ContentValidationError, UserNotFoundError


def csv_reader(rows):
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_HEADERS)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    buffer.seek(0)
    return csv.DictReader(buffer)


def row(**overrides):
    data = {
        'Platform': 'Netflix', 'Title': 'Sacred Games', 'Year': '2018', 'Primary Language': 'Hindi',
        'Assigned Genre': 'Thriller', 'Duration (hours)': '16.5', 'Hindi dub': '1', 'Tamil dub': 'TRUE',
    }
    data.update(overrides)
    return data


def test_map_csv_row_defaults_and_fail_soft_parsing():
    mapped = map_csv_row({'Platform': 'Zee5', 'Title': 'X', 'Year': '2020', 'Seasons': 'n/a',
                          'Release Date': '2020-13-45', 'English Dub': '1', 'Arabic Dub': 'no'})
    assert mapped['primary_language'] == 'Other'
    assert mapped['source'] == 'TBD'
    assert mapped['age_rating'] == 'Not Rated'
    assert mapped['seasons'] == 1
    assert mapped['release_date'] is None
    assert mapped['dubbing']['english'] is True
    assert mapped['dubbing']['arabic'] is False


def test_map_csv_row_keeps_zero_values():
    mapped = map_csv_row({'Platform': 'Zee5', 'Title': 'Trailer', 'Year': '2020', 'Seasons': '0',
                          'Episodes': '0', 'Duration (hours)': '0'})
    assert mapped['seasons'] == 0
    assert mapped['episodes'] == 0
    assert mapped['duration_hours'] == 0.0


def test_map_csv_row_requires_identity():
    with pytest.raises(ContentValidationError):
        map_csv_row({'Platform': 'Zee5', 'Title': '', 'Year': '2020'})


def test_check_headers():
    result = check_headers(['Platform', 'Title', 'Rating'])
    assert result['is_valid'] is False
    assert result['missing_required'] == ['Year']
    assert result['extra_headers'] == ['Rating']


def test_template_matches_headers():
    template = generate_template()
    assert template['headers'] == CSV_HEADERS
    assert len(template['sample_data'][1]) == len(CSV_HEADERS)


def test_import_counts_duplicates_and_errors():
    reader = csv_reader([
        row(),
        row(),
        row(Title='Mirzapur', Year='2018'),
        row(Title='', Year='2018'),
        row(Title='Future', Year='2099'),
    ])
    stats = ContentCsvImporter().import_rows(reader, source='test.csv')

    assert (stats['processed'], stats['duplicates'], stats['errors']) == (2, 1, 2)
    assert [detail['row'] for detail in stats['error_details']] == [4, 5]

    items = list_content({'sortBy': 'title', 'sortOrder': 'asc'})['items']
    assert [item['title'] for item in items] == ['Mirzapur', 'Sacred Games']
    assert items[1]['total_dubbings'] == 2


def test_import_rejects_missing_required_headers():
    reader = csv.DictReader(io.StringIO("Platform,Title\nNetflix,X\n"))
    with pytest.raises(ContentValidationError):
        ContentCsvImporter().import_rows(reader)


def test_import_file_and_export_round_trip(tmp_path):
    source = tmp_path / "catalog.csv"
    with open(source, 'w', newline='', encoding='utf-8-sig') as f:
        writer = csv.DictWriter(f, fieldnames=CSV_HEADERS)
        writer.writeheader()
        writer.writerow(row())
    assert ContentCsvImporter().import_file(str(source))['processed'] == 1

    exporter = ContentExporter()
    out = exporter.export_to_csv(output_file=str(tmp_path / "out.csv"))
    with open(out, newline='', encoding='utf-8-sig') as f:
        exported = list(csv.DictReader(f))
    assert exported[0]['Title'] == 'Sacred Games'
    assert exported[0]['Hindi dub'] == '1'
    assert exported[0]['Telugu dub'] == '0'

    out_json = exporter.export_to_json(output_file=str(tmp_path / "out.json"), params={'platform': 'Hotstar'})
    with open(out_json, encoding='utf-8') as f:
        data = json.load(f)
    assert data['export_info']['total_records'] == 0


def test_render_csv_header_and_empty_values():
    document = render_csv([{'platform': 'Netflix', 'title': 'X', 'year': 2020, 'dubbing': {'hindi': True}}])
    header, line = document.splitlines()
    assert header.split(',')[:3] == ['Platform', 'Title', 'Self Declared Genre']
    values = next(csv.reader([line]))
    assert values[:4] == ['Netflix', 'X', '', '']
    assert content_to_csv_row({'dubbing': {}})[-1] == ''


def test_exports_are_recorded_in_activity_log(user, add_content):
    add_content(title='Logged')
    records = ContentExporter(user_id=user).export_records({'platform': 'Netflix'}, 'json')
    assert [record['title'] for record in records] == ['Logged']

    exports = list_activities({'action': 'export'})
    assert exports['total'] == 1
    entry = exports['items'][0]
    assert entry['user_id'] == user
    assert entry['details'] == {'format': 'json', 'records': 1, 'filters': {'platform': 'Netflix'}}


def test_export_and_import_reject_unknown_user():
    with pytest.raises(UserNotFoundError):
        ContentExporter(user_id=77).export_records()
    with pytest.raises(UserNotFoundError):
        ContentCsvImporter(user_id=77).import_rows(csv_reader([row()]))
    assert list_content()['pagination']['total'] == 0

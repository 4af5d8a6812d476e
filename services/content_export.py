#!/usr/bin/env python3
"""
Content Export Service
Exports active catalog records as CSV (spreadsheet layout) or JSON
"""

import csv
import io
import json
import logging
from typing import Dict, List, Optional, Any
from datetime import datetime

from config import CSV_ENCODING
from filter_configs.filter_configs import get_filter_config
from models.content import Content, DUBBING_LANGUAGES
from services.activity_service import acting_user, log_activity
from services.content_import import FIELD_HEADERS, CSV_HEADERS
from services.filter_builder import build_filters
from services.universal_db_aggregator import aggregate_db_data
from utils.decorators import with_session

logger = logging.getLogger(__name__)


def content_to_csv_row(record: Dict[str, Any]) -> List[str]:
    """One record in CSV_HEADERS order; dubbing flags as "1"/"0", missing values empty"""
    row = []
    for _, field in FIELD_HEADERS:
        value = record.get(field)
        row.append('' if value is None else str(value))
    dubbing = record.get('dubbing') or {}
    row.extend('1' if dubbing.get(language) else '0' for language in DUBBING_LANGUAGES)
    row.append(record.get('age_rating') or '')
    return row


def render_csv(records: List[Dict[str, Any]]) -> str:
    """CSV document with header row"""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow(content_to_csv_row(record))
    return buffer.getvalue()


class ContentExporter:
    """Class for exporting catalog records"""

    def __init__(self, user_id: Optional[int] = None):
        self.user_id = user_id
        logger.info("Initializing ContentExporter")

    def fetch_records(self, params: Optional[Dict[str, Any]] = None, session=None) -> List[Dict[str, Any]]:
        """Active records matching the analytics filter parameters, by id"""
        filters = build_filters(Content, params or {}, get_filter_config('content'))
        result = aggregate_db_data(
            model_class=Content,
            filters=filters,
            order_by={"id": "asc"},
            return_format="list",
            session=session
        )
        return result.get("results", [])

    @with_session
    def export_records(self, params: Optional[Dict[str, Any]] = None, export_format: str = "csv",
                       session=None) -> List[Dict[str, Any]]:
        """Fetch the records of one export and record it in the activity log"""
        acting_user(session, self.user_id)
        records = self.fetch_records(params, session=session)
        log_activity(session, self.user_id, "export", {
            "format": export_format,
            "records": len(records),
            "filters": params or {}
        })
        session.commit()
        return records

    def export_to_csv(self, output_file: str = None, params: Optional[Dict[str, Any]] = None) -> str:
        """Export content to CSV format"""
        logger.info("Exporting content to CSV...")
        records = self.export_records(params, "csv")
        logger.info(f"Exported {len(records)} records")

        # Form output file
        if not output_file:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            output_file = f"content_export_{timestamp}.csv"

        with open(output_file, 'w', newline='', encoding=CSV_ENCODING) as f:
            f.write(render_csv(records))

        logger.info(f"CSV export completed: {output_file}")
        return output_file

    def export_to_json(self, output_file: str = None, params: Optional[Dict[str, Any]] = None) -> str:
        """Export content to JSON format"""
        logger.info("Exporting content to JSON...")
        records = self.export_records(params, "json")
        logger.info(f"Exported {len(records)} records")

        if not output_file:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            output_file = f"content_export_{timestamp}.json"

        # Add metadata
        export_data = {
            "export_info": {
                "timestamp": datetime.now().isoformat(),
                "total_records": len(records),
                "filters_applied": params or {}
            },
            "content": records
        }

        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(export_data, f, indent=2, ensure_ascii=False)

        logger.info(f"JSON export completed: {output_file}")
        return output_file

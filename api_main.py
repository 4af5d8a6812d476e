import logging
import time
import uvicorn
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Dict, Any
from fastapi import FastAPI, Request, Body, Header
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy import text

from config import API_HOST, API_PORT, APP_VERSION, CORS_ORIGINS, LOG_LEVEL
from schemas import DuplicateCheck, parse_payload
from services import analytics_service, content_service, activity_service
from services.content_export import ContentExporter, render_csv
from services.content_import import generate_template
from services.db import SessionLocal, init_db
from services.exceptions import CatalogError
from utils.endpoint_helpers import query_params, respond
from utils.responses import success_response, error_response

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

START_TIME = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database schema ready")
    yield


app = FastAPI(
    title="Content Catalog Analytics API",
    description="""
    API for managing a streaming content catalog and exploring it through aggregated analytics.

    FILTER PARAMETERS (all analytics endpoints, camelCase or snake_case):
    - platform, genre, language (alias region), ageRating, source: comma-separated lists
    - type / format: Title Cased before matching (movie -> Movie)
    - year: single year, inclusive range (2020-2023), list (2020,2022) or a repeated parameter;
      startYear/endYear narrow it
    - startDate / endDate: inclusive release date window (ISO dates)
    - minDuration/maxDuration, minSeasons/maxSeasons, minPopularity/maxPopularity (dubbing count)
    - hasDubbing: true/false (also 1/0, yes/no)
    - dubbingLanguage: comma list; every language must be dubbed

    Unparseable values are ignored rather than rejected.

    RESPONSE ENVELOPE:
    - success: {"success": true, "message", "data", "timestamp"}
    - error: {"success": false, "message", "error", "timestamp"} with status 400/403/404/409/500

    X-User-Id (optional header) names the user a write or export is attributed to.
    """,
    version=APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {'field': '.'.join(str(part) for part in error['loc']), 'message': error['msg']}
        for error in exc.errors()
    ]
    return error_response("Validation error", error=details, status_code=400)


# --- Health ---
def _health() -> Dict[str, Any]:
    session = SessionLocal()
    try:
        session.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "disconnected"
    finally:
        session.close()
    return {
        "status": "ok" if database == "connected" else "degraded",
        "database": database,
        "uptime_seconds": round(time.time() - START_TIME, 1),
        "version": APP_VERSION,
        "checked_at": datetime.now().isoformat()
    }


@app.get("/", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Response:
      - status (str): "ok" when the database is reachable, "degraded" otherwise.
    """
    health = _health()
    if health["database"] != "connected":
        return error_response("Service degraded", error=health, status_code=503)
    return success_response("Service is healthy", health)


@app.get("/health", tags=["Health"])
def health_details():
    """Database reachability, uptime and version."""
    return health_check()


# --- Content ---
@app.get("/content", tags=["Content"])
def get_content_list(request: Request):
    """
    Returns active content records, paginated.

    FILTERS: platform, genre, language (comma lists), year (single, range or list),
             search (substring of title or self-declared genre)
    SORTING: sortBy=<column> (default created_at), sortOrder=asc|desc
    PAGINATION: page (default 1), limit (default 100, max 1000)

    EXAMPLES:
    - ?platform=Netflix,Hotstar&year=2020-2023
    - ?search=love&sortBy=year&sortOrder=asc
    """
    return respond("Content retrieved", content_service.list_content, query_params(request))


@app.get("/content/stats", tags=["Content"])
def get_content_stats():
    """Total active records with counts by platform, genre and language."""
    return respond("Content statistics retrieved", content_service.get_content_stats)


@app.get("/content/export-csv", tags=["Content"])
def export_content_csv(request: Request, user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """
    Exports active content matching the analytics filters as CSV in the
    import spreadsheet layout (dubbing flags as 1/0). The export is recorded
    in the activity log.
    """
    try:
        records = ContentExporter(user_id=user_id).export_records(query_params(request), "csv")
    except CatalogError as e:
        return error_response(str(e), status_code=e.status_code)
    except Exception as e:
        logger.error(f"Error exporting content: {e}")
        return error_response("Error exporting content", error=str(e), status_code=500)
    filename = f"content_export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        content=render_csv(records),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@app.get("/content/csv-template", tags=["Content"])
def get_csv_template():
    """Header row and one sample row for bulk CSV import."""
    return respond("CSV template generated", generate_template)


@app.post("/content/check-duplicate", tags=["Content"])
def check_duplicate(payload: Dict[str, Any] = Body(...)):
    """
    Checks whether an active record already uses the (platform, title, year) triple.

    BODY: {"platform", "title", "year", "excludeId"?}
    """
    def check():
        data = parse_payload(DuplicateCheck, payload)
        return {"is_duplicate": content_service.check_duplicate(
            data["platform"], data["title"], data["year"], exclude_id=data["exclude_id"]
        )}

    return respond("Duplicate check completed", check)


@app.get("/content/{content_id}", tags=["Content"])
def get_content(content_id: int):
    return respond("Content retrieved", content_service.get_content, content_id)


@app.post("/content", tags=["Content"])
def create_content(payload: Dict[str, Any] = Body(...), user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """
    Creates a content record. total_dubbings is derived from the dubbing flags;
    a supplied value is ignored. Returns 409 when (platform, title, year) is taken.
    """
    return respond("Content created", content_service.create_content, payload, user_id=user_id, status_code=201)


@app.put("/content/{content_id}", tags=["Content"])
def update_content(content_id: int, payload: Dict[str, Any] = Body(...),
                   user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """Partial update; only fields present in the body change."""
    return respond("Content updated", content_service.update_content, content_id, payload, user_id=user_id)


@app.delete("/content/{content_id}", tags=["Content"])
def delete_content(content_id: int, user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """Soft delete: the record is hidden from every listing and report."""
    return respond("Content deleted", content_service.delete_content, content_id, user_id=user_id)


# --- Analytics ---
@app.get("/analytics/platform-distribution", tags=["Analytics"])
def platform_distribution(request: Request):
    """Count per platform. SORTING: sortBy=count|platform, sortOrder=asc|desc"""
    return respond("Platform distribution retrieved", analytics_service.platform_distribution, query_params(request))


@app.get("/analytics/genre-trends", tags=["Analytics"])
def genre_trends(request: Request):
    """Yearly counts per genre (empty genres excluded), genres by total descending."""
    return respond("Genre trends retrieved", analytics_service.genre_trends, query_params(request))


@app.get("/analytics/language-stats", tags=["Analytics"])
def language_stats(request: Request):
    return respond("Language statistics retrieved", analytics_service.language_stats, query_params(request))


@app.get("/analytics/yearly-releases", tags=["Analytics"])
def yearly_releases(request: Request):
    """Count per year; without a year filter covers 2010 through the current year."""
    return respond("Yearly releases retrieved", analytics_service.yearly_releases, query_params(request))


@app.get("/analytics/dubbing-analysis", tags=["Analytics"])
def dubbing_analysis(request: Request):
    """Per-language dubbed counts with platforms, plus the distribution of dubbing counts."""
    return respond("Dubbing analysis retrieved", analytics_service.dubbing_analysis, query_params(request))


@app.get("/analytics/source-breakdown", tags=["Analytics"])
def source_breakdown(request: Request):
    return respond("Source breakdown retrieved", analytics_service.source_breakdown, query_params(request))


@app.get("/analytics/duration-analysis", tags=["Analytics"])
def duration_analysis(request: Request):
    """
    Duration statistics and range counts.

    RANGES: 0-1, 1-2, 2-3, 3-5, 5-10, 10-20, 20-50 hrs (lower bound inclusive) and 50+
    """
    return respond("Duration analysis retrieved", analytics_service.duration_analysis, query_params(request))


@app.get("/analytics/age-rating-distribution", tags=["Analytics"])
def age_rating_distribution(request: Request):
    return respond("Age rating distribution retrieved", analytics_service.age_rating_distribution,
                   query_params(request))


@app.get("/analytics/dashboard-summary", tags=["Analytics"])
def dashboard_summary():
    """Totals of content, platforms, genres, this year's releases and the 5 latest releases."""
    return respond("Dashboard summary retrieved", analytics_service.dashboard_summary)


@app.post("/analytics/custom", tags=["Analytics"])
def custom_analytics(request: Request, payload: Optional[Dict[str, Any]] = Body(None)):
    """
    Groups by caller-chosen dimensions.

    BODY: {"groupBy": "platform" | ["platform", "genre"], "metric": count|avgDuration|totalDuration|avgDubbings,
           "aggregationType"?, any filter parameter}
    Query string filters are merged with the body; the body wins.
    """
    return respond("Custom analytics retrieved", analytics_service.custom_analytics,
                   {**query_params(request), **(payload or {})})


@app.get("/analytics/monthly-release-trend", tags=["Analytics"])
def monthly_release_trend(request: Request):
    """Releases per month (YYYY-MM); defaults to the 12 months ending today."""
    return respond("Monthly release trend retrieved", analytics_service.monthly_release_trend, query_params(request))


@app.get("/analytics/platform-growth", tags=["Analytics"])
def platform_growth(request: Request):
    return respond("Platform growth over time retrieved", analytics_service.platform_growth, query_params(request))


@app.get("/analytics/genre-platform-heatmap", tags=["Analytics"])
def genre_platform_heatmap(request: Request):
    return respond("Genre-platform heatmap retrieved", analytics_service.genre_platform_heatmap,
                   query_params(request))


@app.get("/analytics/language-platform-matrix", tags=["Analytics"])
def language_platform_matrix(request: Request):
    return respond("Language-platform matrix retrieved", analytics_service.language_platform_matrix,
                   query_params(request))


@app.get("/analytics/duration-by-format-genre", tags=["Analytics"])
def duration_by_format_genre(request: Request):
    return respond("Duration by format/genre retrieved", analytics_service.duration_by_format_genre,
                   query_params(request))


@app.get("/analytics/dubbing-penetration", tags=["Analytics"])
def dubbing_penetration(request: Request):
    return respond("Dubbing penetration retrieved", analytics_service.dubbing_penetration, query_params(request))


@app.get("/analytics/top-dubbed-languages", tags=["Analytics"])
def top_dubbed_languages(request: Request):
    """Most dubbed languages; limit defaults to 10."""
    return respond("Top dubbed languages retrieved", analytics_service.top_dubbed_languages, query_params(request))


@app.get("/analytics/content-freshness", tags=["Analytics"])
def content_freshness(request: Request):
    """Age since release overall and by platform (release date, or January 1 of the year)."""
    return respond("Content freshness retrieved", analytics_service.content_freshness, query_params(request))


@app.get("/analytics/data-quality-score", tags=["Analytics"])
def data_quality_score(request: Request):
    """Weighted completeness score (0-100) per record, summarized."""
    return respond("Data quality score retrieved", analytics_service.data_quality_score, query_params(request))


@app.get("/analytics/multi-dimensional", tags=["Analytics"])
def multi_dimensional(request: Request):
    """Counts per value of each dimension (default platform,genre,language,type) plus summary."""
    return respond("Multi-dimensional analytics retrieved", analytics_service.multi_dimensional,
                   query_params(request))


@app.get("/analytics/advanced-slicing", tags=["Analytics"])
def advanced_slicing(request: Request):
    """
    Paginated slice by groupBy (default platform) and optional secondaryGroupBy.

    EXAMPLES:
    - ?groupBy=platform&secondaryGroupBy=genre&sortBy=avgDuration&page=2&limit=20
    """
    return respond("Advanced slicing retrieved", analytics_service.advanced_slicing, query_params(request))


@app.get("/analytics/comparative", tags=["Analytics"])
def comparative(request: Request):
    """Segments of compareBy (default platform) sorted by metric (default count)."""
    return respond("Comparative analytics retrieved", analytics_service.comparative, query_params(request))


# --- Public analytics ---
@app.get("/public/analytics/monthly-release-trend", tags=["Public Analytics"])
def public_monthly_release_trend(request: Request):
    return respond("Monthly release trend retrieved", analytics_service.public_monthly_release_trend,
                   query_params(request))


@app.get("/public/analytics/platform-distribution", tags=["Public Analytics"])
def public_platform_distribution():
    return respond("Platform distribution retrieved", analytics_service.public_platform_distribution)


@app.get("/public/analytics/language-platform-matrix", tags=["Public Analytics"])
def public_language_platform_matrix():
    return respond("Language-platform matrix retrieved", analytics_service.public_language_platform_matrix)


@app.get("/public/analytics/genre-trends", tags=["Public Analytics"])
def public_genre_trends(request: Request):
    return respond("Genre trends retrieved", analytics_service.public_genre_trends, query_params(request))


# --- Users & activity ---
@app.post("/users", tags=["Users"])
def create_user(payload: Dict[str, Any] = Body(...)):
    """BODY: {"username" (3-30 chars), "email", "role": user|admin}"""
    return respond("User registered", activity_service.create_user, payload, status_code=201)


@app.get("/users", tags=["Users"])
def list_users(request: Request):
    return respond("Users retrieved", activity_service.list_users, query_params(request))


@app.get("/users/{user_id}", tags=["Users"])
def get_user(user_id: int):
    return respond("User retrieved", activity_service.get_user, user_id)


@app.put("/users/bulk/roles", tags=["Users"])
def bulk_update_roles(payload: Dict[str, Any] = Body(...), user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """BODY: {"userIds": [int, ...], "role": user|admin}. Every id must exist."""
    return respond("User roles updated", activity_service.bulk_update_roles, payload, acting_user_id=user_id)


@app.put("/users/bulk/status", tags=["Users"])
def bulk_set_status(payload: Dict[str, Any] = Body(...), user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """BODY: {"userIds": [int, ...], "setActive": bool}"""
    return respond("User status updated", activity_service.bulk_set_status, payload, acting_user_id=user_id)


@app.put("/users/{target_id}/role", tags=["Users"])
def update_user_role(target_id: int, payload: Dict[str, Any] = Body(...),
                     user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """BODY: {"role": user|admin}"""
    return respond("User role updated", activity_service.update_user_role, target_id, payload,
                   acting_user_id=user_id)


@app.put("/users/{target_id}/toggle-status", tags=["Users"])
def toggle_user_status(target_id: int, user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """Activates a deactivated user or deactivates an active one. Deactivated users cannot act."""
    return respond("User status updated", activity_service.toggle_user_status, target_id, acting_user_id=user_id)


@app.delete("/users/{target_id}", tags=["Users"])
def delete_user(target_id: int, user_id: Optional[int] = Header(None, alias="X-User-Id")):
    """Soft delete: the user is hidden and cannot act; their records and activities are kept."""
    return respond("User deleted", activity_service.delete_user, target_id, acting_user_id=user_id)


@app.get("/users/{user_id}/activities", tags=["Users"])
def get_user_activities(user_id: int, request: Request):
    return respond("User activities retrieved", activity_service.list_user_activities, user_id,
                   query_params(request))


@app.get("/activities", tags=["Users"])
def list_activities(request: Request):
    """FILTERS: user_id, action (comma list), startDate/endDate on created_at. Newest first."""
    return respond("Activities retrieved", activity_service.list_activities, query_params(request))


if __name__ == "__main__":
    uvicorn.run(app, host=API_HOST, port=API_PORT)

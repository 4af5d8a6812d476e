import click
from services.db import init_db as init_db_func
from sqlalchemy import inspect, text
from services.db import engine
from services.content_import import ContentCsvImporter
from services.content_export import ContentExporter
from services.activity_service import create_user as create_user_func
from services.analytics_service import content_freshness, data_quality_score
from services.exceptions import CatalogError

import logging
from config import LOG_LEVEL
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

TABLE_DESCRIPTIONS = {
    'contents': 'Catalog records (platform, title, year, genre, language, dubbing flags)',
    'users': 'Registered users',
    'user_activities': 'Audit trail of create/update/delete/import/export actions',
}

@click.group()
def cli():
    """Content catalog CLI entrypoint."""
    pass

@cli.command(name="init_db")
def init_db():
    """Initialize the database (create tables)."""
    init_db_func()
    click.echo("Database initialized.")

@cli.command(name="import_csv")
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--user-id', default=None, type=int, help='User recorded as creator (optional)')
def import_csv(path, user_id):
    """
    Import catalog records from a CSV spreadsheet.

    Duplicates (same platform, title and year) are skipped; invalid rows are reported.

    Example:
      python main.py import_csv catalog.csv
    """
    init_db_func()
    importer = ContentCsvImporter(user_id=user_id)
    try:
        stats = importer.import_file(path)
    except CatalogError as e:
        raise click.ClickException(str(e))

    click.echo("Import completed:")
    click.echo(f"  Processed: {stats['processed']}")
    click.echo(f"  Duplicates: {stats['duplicates']}")
    click.echo(f"  Errors: {stats['errors']}")

    if stats['error_details']:
        click.echo("Errors:")
        for error in stats['error_details'][:5]:  # Show first 5 errors
            click.echo(f"  - Row {error['row']}: {error['error']}")
        if len(stats['error_details']) > 5:
            click.echo(f"  ... and {len(stats['error_details']) - 5} more errors")

@cli.command(name="export_csv")
@click.option('--format', 'export_format', type=click.Choice(['json', 'csv']), default='csv', help='Export format')
@click.option('--out', default=None, help='Output file (optional)')
@click.option('--platform', default=None, help='Only export these platforms (comma-separated)')
@click.option('--user-id', default=None, type=int, help='User the export is attributed to (optional)')
def export_csv(export_format, out, platform, user_id):
    """Export active catalog records."""
    click.echo(f"Exporting content in {export_format.upper()} format...")

    init_db_func()
    exporter = ContentExporter(user_id=user_id)
    params = {'platform': platform} if platform else None

    try:
        if export_format == 'json':
            output_file = exporter.export_to_json(output_file=out, params=params)
        else:  # csv
            output_file = exporter.export_to_csv(output_file=out, params=params)
    except CatalogError as e:
        raise click.ClickException(str(e))

    click.echo(f"Content exported to: {output_file}")

@cli.command(name="show_table")
@click.argument('table')
def show_table(table):
    """
    Show first 10 records from a table.

    Available tables: contents, users, user_activities

    Examples:
      python main.py show_table contents
    """
    if table not in inspect(engine).get_table_names():
        click.echo(f"Error: Table '{table}' does not exist.\n", err=True)
        click.echo("Available tables:")
        for tbl, desc in TABLE_DESCRIPTIONS.items():
            click.echo(f"  {tbl:20} - {desc}")
        click.echo("\nExample: python main.py show_table contents")
        return

    with engine.connect() as conn:
        result = conn.execute(text(f"SELECT * FROM {table} LIMIT 10"))
        rows = result.fetchall()
        if not rows:
            click.echo(f"No records found in table '{table}'.")
            return
        # Print column names
        columns = list(result.keys())
        click.echo(f"Columns: {columns}")
        click.echo(f"Showing first 10 records from '{table}':")
        for row in rows:
            click.echo(str(dict(zip(columns, row))))

@cli.command(name="quality_report")
@click.option('--platform', default=None, help='Restrict to these platforms (comma-separated)')
def quality_report(platform):
    """Show the data quality score summary."""
    logging.getLogger().setLevel(logging.ERROR)
    report = data_quality_score({'platform': platform} if platform else {})
    overall = report['overall']

    click.echo("Data Quality:")
    click.echo(f"  Records scored: {overall['total']:,}")
    click.echo(f"  Average score: {float(overall['avg_score']):.1f}")
    click.echo(f"  Lowest / highest: {overall['min_score']} / {overall['max_score']}")
    click.echo("  Score distribution:")
    for bucket in report['distribution']:
        click.echo(f"    - {bucket['range']}: {bucket['count']}")

    issues = sorted(report['top_issues'].items(), key=lambda item: -item[1])
    issues = [(field, count) for field, count in issues if count]
    if issues:
        click.echo("  Most frequently missing:")
        for field, count in issues[:5]:
            click.echo(f"    - {field}: {count}")

@cli.command(name="freshness_report")
@click.option('--platform', default=None, help='Restrict to these platforms (comma-separated)')
def freshness_report(platform):
    """Show content age since release, overall and per platform."""
    logging.getLogger().setLevel(logging.ERROR)
    report = content_freshness({'platform': platform} if platform else {})
    overall = report['overall']

    click.echo("Content Freshness:")
    click.echo(f"  Records: {overall['total']:,}")
    click.echo(f"  Average age: {float(overall['avg_age_days']):,.0f} days")
    click.echo(f"  Released in last 7 / 30 / 90 days: "
               f"{overall['last7']} / {overall['last30']} / {overall['last90']}")
    click.echo(f"  Released this year: {overall['released_this_year']}")
    if report['by_platform']:
        click.echo("  By platform (freshest first):")
        for item in report['by_platform']:
            click.echo(f"    - {item['platform']}: {float(item['avg_age_days']):,.0f} days "
                       f"({item['total']} records)")

@cli.command(name="create_user")
@click.argument('username')
@click.argument('email')
@click.option('--role', type=click.Choice(['user', 'admin']), default='user', help='User role')
def create_user(username, email, role):
    """Register a user that content changes can be attributed to."""
    init_db_func()
    try:
        user = create_user_func({'username': username, 'email': email, 'role': role})
    except CatalogError as e:
        raise click.ClickException(f"{e} {getattr(e, 'details', None) or ''}".strip())
    click.echo(f"User created: id={user['id']} username={user['username']} role={user['role']}")

if __name__ == "__main__":
    cli()

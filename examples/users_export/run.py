"""
Example ETL: export active users from a CSV file to a text report.

Demonstrates the scriptflow engine with:
- A CSV query whose rows drive nested scripts
- A text connection receiving the report lines
- Dialect-specific content with a default fallback
- A conditional element and an onerror handler
"""

import logging
from pathlib import Path

from scriptflow.connections import connect
from scriptflow.connections.base import ConnectionParameters
from scriptflow.core.elements import OnErrorElement, QueryElement, ScriptElement
from scriptflow.core.session import EtlSession

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Get the directory containing this script
EXAMPLE_DIR = Path(__file__).parent


def create_session() -> EtlSession:
    """
    Create the users export ETL.

    Returns:
        Configured EtlSession ready to run
    """

    connections = {
        "users": lambda: connect(
            "csv",
            ConnectionParameters(url=str(EXAMPLE_DIR / "sample_users.csv")),
        ),
        "report": lambda: connect(
            "text",
            ConnectionParameters(
                url=str(EXAMPLE_DIR / "output" / "active_users.txt"),
                properties={"trim": "true"},
            ),
        ),
    }

    elements = [
        ScriptElement(
            location="report_header",
            connection_id="report",
            content={
                "text": "# Active users (batch $batch_id)",
                "default": "Active users",
            },
        ),
        QueryElement(
            location="read_active_users",
            connection_id="users",
            # Every row whose fourth column is "active"
            content={"default": ".*,.*,.*,^active$"},
            children=[
                ScriptElement(
                    location="write_user",
                    connection_id="report",
                    content={"default": "$id | $name | $email"},
                    on_error=[
                        OnErrorElement(
                            type="TextProviderError",
                            content={"default": "$id | <unavailable>"},
                        ),
                    ],
                ),
            ],
        ),
        ScriptElement(
            location="report_footer",
            connection_id="report",
            content={"default": "-- end of report --"},
            condition=lambda ctx: ctx.get_parameter("with_footer", False),
        ),
    ]

    return EtlSession(
        name="users_export",
        elements=elements,
        connections=connections,
        variables={"batch_id": 1, "with_footer": True},
    )


def main():
    """Run the example ETL."""
    print("=" * 80)
    print("Active Users Export Example")
    print("=" * 80)
    print()

    session = create_session()

    # First, validate the configuration
    print("Step 1: Validating ETL configuration...")
    print("-" * 80)
    session.run(dry_run=True)
    print()

    # Run the ETL
    print("Step 2: Running ETL on sample data...")
    print("-" * 80)
    stats = session.run()
    print()

    # Print results summary
    print("=" * 80)
    print("ETL Results")
    print("=" * 80)
    for element in stats.elements.values():
        print(
            f"{element.location}: {element.successful} ok, {element.failed} failed, "
            f"{element.total_seconds:.4f}s (avg {element.average_seconds:.4f}s)"
        )
    print(f"Duration: {stats.duration_seconds:.2f} seconds")

    stats_path = EXAMPLE_DIR / "output" / "stats.json"
    stats_path.write_text(stats.to_json(), encoding="utf-8")
    print()
    print(f"✓ Report written to: {EXAMPLE_DIR / 'output' / 'active_users.txt'}")
    print(f"✓ Statistics written to: {stats_path}")
    print("=" * 80)

    return stats


if __name__ == "__main__":
    main()

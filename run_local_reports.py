#!/usr/bin/env python3
"""
Local Report Script
Loads the report data once and prints every report summary, without the HTTP layer.
"""

import asyncio
import json
import os
import sys
from datetime import date, timedelta
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.config import get_settings
from app.models.records import CurrentUser
from app.models.schemas import ReportFilters
from app.reporting import ReportCache, ReportDataLoader, ReportService
from app.services.supabase_client import get_supabase_client


async def run(days: int):
    settings = get_settings()
    service = ReportService(
        loader=ReportDataLoader(get_supabase_client(), settings),
        cache=ReportCache(),
        settings=settings,
    )
    # Local runs act as management
    user = CurrentUser(id="local", role="management", name="Local Script")

    today = date.today()
    filters = ReportFilters(start_date=today - timedelta(days=days), end_date=today)
    print(f"\nDate range: {filters.start_date} to {filters.end_date}")

    for name in service.reports:
        print("\n" + "-" * 40)
        print(f"REPORT: {name}")
        print("-" * 40)

        result = await service.get_report(name, user, filters)
        if not result.success:
            print(f"ERROR: {result.error}")
            return
        print(json.dumps(result.to_response()["data"], indent=2, default=str)[:2000])

    print(f"\nCache: {service.cache.stats()}")


def main():
    print("=" * 60)
    print("LOCAL REPORT SCRIPT")
    print("=" * 60)

    days = int(sys.argv[1]) if len(sys.argv) > 1 else 30
    asyncio.run(run(days))

    print("\n" + "=" * 60)
    print("REPORTS COMPLETE!")
    print("=" * 60)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Local Analytics Script
Builds one analytics report locally and prints a summary.

Usage: python run_local_analytics.py [week|month|year] [all|firebase|cpanel]
"""

import asyncio
import logging
import os
import sys
from dotenv import load_dotenv

# Load .env file
load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.services.analytics_service import AnalyticsSourceError, get_analytics_data


def main():
    period = sys.argv[1] if len(sys.argv) > 1 else "month"
    source = sys.argv[2] if len(sys.argv) > 2 else "all"

    print("=" * 60)
    print("LOCAL ANALYTICS SCRIPT")
    print("=" * 60)
    print(f"\nPeriod: {period}")
    print(f"Source: {source}")

    try:
        report = asyncio.run(get_analytics_data(period, source))
    except (ValueError, AnalyticsSourceError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print("\n" + "-" * 40)
    print("REVENUE")
    print("-" * 40)
    print(f"Total revenue:      {report.total_revenue:.2f} GEL")
    print(f"This period:        {report.revenue_this_period:.2f} GEL ({report.revenue_growth:+.1f}%)")
    print(f"Average ticket:     {report.average_ticket_value:.2f} GEL")
    print(f"Services / parts:   {report.service_revenue:.2f} / {report.parts_revenue:.2f} GEL")

    print("\n" + "-" * 40)
    print("CASES")
    print("-" * 40)
    print(f"Total: {report.total_cases}  Active: {report.active_cases}  "
          f"Completed: {report.completed_cases}  Cancelled: {report.cancelled_cases}")
    print(f"Completion rate:    {report.case_completion_rate:.1f}%")
    print(f"Customers:          {report.total_customers} (repeat {report.repeat_customer_rate:.1f}%)")

    print("\n" + "-" * 40)
    print("TOP SERVICES")
    print("-" * 40)
    for service in report.top_services:
        print(f"{service.name:<30} {service.count:>4}  {service.revenue:>10.2f}")

    print("\n" + "=" * 60)
    print("ANALYTICS COMPLETE!")
    print("=" * 60)


if __name__ == "__main__":
    main()

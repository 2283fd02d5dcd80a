#!/usr/bin/env python3
"""
ProcessFlow demo data seed script.

Tenant "demo" with one user per role, six pipeline stages, five clients,
five orders with history and a few notifications.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --reset
"""

import argparse
import sys

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.services.seed_service import seed_demo


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--reset", action="store_true", help="drop and recreate the demo tenant")
    args = parser.parse_args()

    app = create_app()
    print(f"DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")
    with app.app_context():
        db.create_all()
        counts = seed_demo(reset=args.reset)

    if not counts["tenants"]:
        print("Demo tenant already exists (use --reset to recreate)")
        return
    for key, value in counts.items():
        print(f"  {key:<15} {value}")
    print("\nLogins (tenant 'demo'):")
    print("  admin@processflow.com.br / admin")
    print("  supervisor@processflow.com.br / supervisor")
    print("  operador@processflow.com.br / operador")
    print("  cliente@processflow.com.br / cliente")


if __name__ == "__main__":
    main()

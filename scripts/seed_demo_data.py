#!/usr/bin/env python3
"""
Employee Journey Engine — Demo Data Seed Script.

Creates a small roster (admin, mentors, new hires, existing staff) and
starts a journey for every employee, then walks a couple of journeys
forward so dashboards have something to show.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --append
    python scripts/seed_demo_data.py --verbose
"""

import argparse
import sys
from datetime import timedelta

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.models.auth import CAPABILITY_ADMIN, CAPABILITY_EMPLOYEE, User
from app.models.journey import EmployeeType, Journey, JourneyActivity, JourneyPhase
from app.models.notification import EmailLog, Notification
from app.services import auto_advance, journey_service, journey_store, mentor_service
from app.utils.helpers import utcnow

USERS = [
    {"email": "hr.admin@example.com", "full_name": "Hale Aydin", "department": "People Ops",
     "designation": "HR Lead", "system_roles": [CAPABILITY_ADMIN, CAPABILITY_EMPLOYEE]},
    {"email": "mentor.one@example.com", "full_name": "Mert Kaya", "department": "Engineering",
     "designation": "Staff Engineer"},
    {"email": "mentor.two@example.com", "full_name": "Selin Demir", "department": "Finance",
     "designation": "Finance Manager"},
    {"email": "new.dev@example.com", "full_name": "Ece Yildiz", "department": "Engineering",
     "designation": "Software Engineer", "journey": EmployeeType.NEW_EMPLOYEE},
    {"email": "new.analyst@example.com", "full_name": "Can Ozturk", "department": "Finance",
     "designation": "Financial Analyst", "journey": EmployeeType.NEW_EMPLOYEE},
    {"email": "veteran.ops@example.com", "full_name": "Deniz Arslan", "department": "Operations",
     "designation": "Ops Specialist", "journey": EmployeeType.EXISTING_EMPLOYEE},
]


def _p(msg, verbose):
    if verbose:
        print(msg)


def seed_all(app, append=False, verbose=False):
    """Seed users and journeys."""
    with app.app_context():
        if not append:
            print("🗑️  Clearing existing data...")
            for model in [EmailLog, Notification, JourneyActivity, JourneyPhase, Journey, User]:
                db.session.query(model).delete()
            db.session.commit()
            print("   Done.\n")

        users = {}
        for spec in USERS:
            data = {k: v for k, v in spec.items() if k != "journey"}
            user = User.query.filter_by(email=data["email"]).first()
            if user is None:
                user = User(**data)
                db.session.add(user)
            users[spec["email"]] = (user, spec.get("journey"))
        db.session.commit()
        _p(f"   Users: {len(users)}", verbose)

        admin = users["hr.admin@example.com"][0]
        start = utcnow() - timedelta(days=20)
        journeys = []
        for user, employee_type in users.values():
            if employee_type is None:
                continue
            if journey_store.find_active_journey(user.id):
                continue
            journey = journey_service.create_journey(
                user.id, employee_type, start_date=start, actor_id=admin.id,
            )
            journeys.append(journey)
            _p(f"   Journey #{journey['id']} for {user.display_name} ({employee_type})", verbose)

        # Mentors on the first phase of each new hire
        mentors = [users["mentor.one@example.com"][0], users["mentor.two@example.com"][0]]
        for i, journey in enumerate(j for j in journeys
                                    if j["employee_type"] == EmployeeType.NEW_EMPLOYEE):
            phase = journey["phases"][0]
            mentor_service.assign_mentor_to_phase(
                phase["id"], mentors[i % len(mentors)].id, notify=False, actor_id=admin.id,
            )

        # Walk the first journey one phase forward
        if journeys:
            auto_advance.auto_advance_phase(
                journeys[0]["id"], auto_advance.CAUSE_MANUAL_ADVANCE,
                {"notes": "Demo advance"}, actor_id=admin.id,
            )

        print(f"\n{'='*60}")
        print(f"🎉 DEMO DATA SEED COMPLETE — {len(users)} users, {len(journeys)} journeys")
        print(f"{'='*60}\n")
        return {"users": len(users), "journeys": len(journeys)}


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--append", action="store_true")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    app = create_app()
    print(f"🎯 DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")
    with app.app_context():
        db.create_all()
    seed_all(app, append=args.append, verbose=args.verbose)


if __name__ == "__main__":
    main()

"""CLI script to fill the backend DB with a demo class.
Usage: python scripts/seed_demo.py [--students N] [--units N]
"""
import argparse

from sqlmodel import Session

from tracker import models, repositories
from tracker.database import create_db_and_tables, engine

FIRST_NAMES = ["Ada", "Bruno", "Chloé", "David", "Elena", "Farid", "Greta", "Hugo", "Inès", "Jonas"]
UNITS = [
    ("Limits", 12),
    ("Derivatives", 15),
    ("Integrals", 10),
    ("Sequences", 8),
]


def main(students: int = 10, units: int = 4):
    """Create demo students (alternating groups) and units.

    Existing usernames are left untouched, so the script can be run twice.
    """
    create_db_and_tables()
    with Session(engine) as session:
        student_repo = repositories.StudentRepository(session)
        unit_repo = repositories.UnitRepository(session)
        created = 0
        for i in range(students):
            first = FIRST_NAMES[i % len(FIRST_NAMES)]
            username = f"{first.lower()}{i // len(FIRST_NAMES) or ''}"
            if student_repo.get_by_username(username) is not None:
                continue
            student_repo.create(models.Student(
                username=username,
                full_name=f"{first} Demo",
                in_group_even=(i % 2 == 0),
            ))
            created += 1
        print(f'Created {created} students')

        existing = {u.name for u in unit_repo.list_all()}
        for week, (name, count) in enumerate(UNITS[:units], start=1):
            if name in existing:
                continue
            unit_repo.create(models.Unit(
                name=name,
                exercise_count=count,
                deadline_group_even=f"2026-{9 + week:02d}-06",
                deadline_group_odd=f"2026-{9 + week:02d}-07",
            ))
            print(f'Created unit {name} with {count} exercises')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--students', type=int, default=10, help='Number of demo students')
    parser.add_argument('--units', type=int, default=len(UNITS), help='Number of demo units')
    args = parser.parse_args()
    main(students=args.students, units=args.units)

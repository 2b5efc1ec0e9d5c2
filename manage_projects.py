#!/usr/bin/env python3
"""
Operator commands for waitlist projects.

    python manage_projects.py create "My Product" my-product [--tiers]
    python manage_projects.py rotate-key <project-id>
    python manage_projects.py freeze <project-id>
    python manage_projects.py unfreeze <project-id>
    python manage_projects.py show-position <project-id> on|off
"""
import argparse
import sys
import os
import uuid

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.database import SessionLocal
from app.core.exceptions import BaseAppException
from app.services.project_service import ProjectService


def _print_project(project):
    print(f"id:            {project.id}")
    print(f"slug:          {project.slug}")
    print(f"api_key:       {project.api_key}")
    print(f"frozen:        {project.is_frozen}")
    print(f"show_position: {project.show_position}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Manage waitlist projects")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a project and print its API key")
    create.add_argument("name")
    create.add_argument("slug")
    create.add_argument("--owner", default=None)
    create.add_argument("--tiers", action="store_true", help="Show tiers instead of exact positions")

    for name in ("rotate-key", "freeze", "unfreeze"):
        p = sub.add_parser(name)
        p.add_argument("project_id", type=uuid.UUID)

    show = sub.add_parser("show-position")
    show.add_argument("project_id", type=uuid.UUID)
    show.add_argument("value", choices=["on", "off"])

    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        svc = ProjectService(db)
        if args.command == "create":
            project = svc.create_project(args.name, args.slug, owner_id=args.owner, show_position=not args.tiers)
        elif args.command == "rotate-key":
            project = svc.rotate_api_key(args.project_id)
        elif args.command == "freeze":
            project = svc.update_settings(args.project_id, is_frozen=True)
        elif args.command == "unfreeze":
            project = svc.update_settings(args.project_id, is_frozen=False)
        else:
            project = svc.update_settings(args.project_id, show_position=args.value == "on")
        _print_project(project)
    except BaseAppException as e:
        print(f"❌ {e.message}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

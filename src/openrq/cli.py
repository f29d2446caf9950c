from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .core.logging_config import setup_production_logging
from .core.project import Project, project_path
from .errors import StoreError


def _open_existing(path: str) -> Project:
    target = project_path(path)
    if not target.exists():
        raise SystemExit(f"{target} does not exist")
    return Project.open(target)


def cmd_new(args: argparse.Namespace) -> None:
    with Project.open(args.path) as project:
        if not project.created:
            raise SystemExit(f"{project.path} already exists")
        print(f"Created {project.path}")


def cmd_info(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        info = project.info()
        payload = info.model_dump()
        payload["path"] = str(project.path)
        payload["versions"] = len(project.versions())
        payload["items"] = len(project.items())
        print(json.dumps(payload, indent=2, default=str))


def cmd_add_requirement(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        item = project.add_requirement(
            args.description,
            args.rationale,
            args.fit_criterion,
            parent=args.parent,
            version=args.version,
        )
        print(f"Added requirement {item.id} (uid {item.uid})")


def cmd_add_solution(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        item = project.add_solution(
            args.description,
            args.link,
            parent=args.parent,
            version=args.version,
        )
        print(f"Added solution {item.id} (uid {item.uid})")


def cmd_list(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        frame = project.items_dataframe(version=args.version)
        if frame.empty:
            print("No items")
            return
        print(frame.to_string(index=False))


def cmd_versions(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        print(project.versions_dataframe().to_string(index=False))


def cmd_add_version(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        version_id = project.add_version(args.name)
        print(f"Added version {version_id}")


def cmd_validate(args: argparse.Namespace) -> None:
    with _open_existing(args.path) as project:
        issues = project.validate()
    print(json.dumps(issues, indent=2))
    if issues:
        raise SystemExit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("orq")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr")
    parser.add_argument("--log-dir", default=None, help="write rotating log files here")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("new")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_new)

    sp = sub.add_parser("info")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_info)

    sp = sub.add_parser("add-requirement")
    sp.add_argument("path")
    sp.add_argument("--description", default=None)
    sp.add_argument("--rationale", default=None)
    sp.add_argument("--fit-criterion", default=None)
    sp.add_argument("--parent", type=int, default=None, help="solution id")
    sp.add_argument("--version", type=int, default=None)
    sp.set_defaults(func=cmd_add_requirement)

    sp = sub.add_parser("add-solution")
    sp.add_argument("path")
    sp.add_argument("--description", default=None)
    sp.add_argument("--link", default=None)
    sp.add_argument("--parent", type=int, default=None, help="requirement id")
    sp.add_argument("--version", type=int, default=None)
    sp.set_defaults(func=cmd_add_solution)

    sp = sub.add_parser("list")
    sp.add_argument("path")
    sp.add_argument("--version", type=int, default=None)
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("versions")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_versions)

    sp = sub.add_parser("add-version")
    sp.add_argument("path")
    sp.add_argument("--name", default=None)
    sp.set_defaults(func=cmd_add_version)

    sp = sub.add_parser("validate")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    console_level = logging.DEBUG if args.verbose else logging.WARNING
    if args.log_dir:
        setup_production_logging(console_level=console_level, log_dir=Path(args.log_dir))
    elif args.verbose:
        logging.basicConfig(level=console_level, format="%(levelname)-8s | %(name)s | %(message)s")
    try:
        args.func(args)
    except StoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main(sys.argv[1:])

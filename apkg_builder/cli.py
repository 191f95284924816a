from __future__ import annotations

import argparse
import logging

from .builder import PackageBuilder
from .config import BuilderConfig, load_config
from .errors import BuildError, DefinitionInvalid, IdCollision
from .types import load_definition
from .validator import collect_issues, validate_apkg


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="apkg_builder")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build an .apkg from a JSON package definition")
    build.add_argument("--definition", required=True, help="Package definition (JSON)")
    build.add_argument("--out", required=True, help="Output .apkg path")
    build.add_argument("--media-dir", default=None, help="Base directory for relative media paths")
    build.add_argument("--config", default=None, help="Builder config (JSON)")

    validate = sub.add_parser("validate", help="Check a package definition without building")
    validate.add_argument("--definition", required=True, help="Package definition (JSON)")

    check = sub.add_parser("check", help="Check a built .apkg (zip layout, notes, media references)")
    check.add_argument("--apkg", required=True, help="Path to .apkg")

    return p


def _print_failure(prefix: str, e: BuildError) -> None:
    print(f"{prefix}: {type(e).__name__}")
    if isinstance(e, DefinitionInvalid):
        for issue in e.issues:
            print(f"{issue.code} {issue}")
    elif isinstance(e, IdCollision):
        for c in e.collisions:
            print(str(c))
    else:
        print(str(e))


def cmd_build(args: argparse.Namespace) -> int:
    try:
        cfg = load_config(args.config) if args.config else BuilderConfig()
        definition = load_definition(args.definition)
        stats = PackageBuilder(definition, config=cfg, media_dir=args.media_dir).write_to_file(args.out)
    except BuildError as e:
        _print_failure("build_failed", e)
        return 1
    except (OSError, TypeError, ValueError) as e:
        print(f"build_failed: {e}")
        return 1
    print(
        f"notes={stats.notes} cards={stats.cards} media={stats.media_files} "
        f"bytes={stats.archive_bytes} out={stats.out_path}"
    )
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    try:
        definition = load_definition(args.definition)
    except DefinitionInvalid as e:
        _print_failure("validate_failed", e)
        return 1
    except (OSError, ValueError) as e:
        print(f"validate_failed: {e}")
        return 1

    issues = collect_issues(definition)
    print(f"models={len(definition.models)} decks={len(definition.decks)} notes={len(definition.notes)}")
    print(f"issues={len(issues)}")
    if issues:
        for issue in issues:
            print(f"{issue.code} {issue}")
        return 1

    print("OK")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    ok, summary = validate_apkg(args.apkg)
    counts = summary.get("counts") or {}
    print(f"notes={counts.get('notes', 0)} cards={counts.get('cards', 0)}")
    for w in summary.get("warnings") or []:
        print(f"warning: {w}")
    if not ok:
        for m in summary.get("errors") or []:
            print(m)
        return 1
    print("OK")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "build":
        return cmd_build(args)

    if args.command == "validate":
        return cmd_validate(args)

    if args.command == "check":
        return cmd_check(args)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Marginalia - Document Annotation Store

Main entry point for the Marginalia command line. Each command opens the store,
runs one operation and reports the outcome; errors are turned into a message
and a non-zero exit status here and nowhere else.
"""

import logging
import sys
import argparse
from pathlib import Path
from typing import List, Optional

from marginalia import __version__
from marginalia.config import config
from marginalia.database import DatabaseManager
from marginalia.errors import MarginaliaError
from marginalia.importers import SidecarImporter
from marginalia.merge import MergeEngine
from marginalia.packages import PackageCodec
from marginalia.settings import SettingsManager, rename_current_user


def setup_logging():
    """Configure logging for the application."""
    level = getattr(logging, config.get("logging.level", "INFO").upper())
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def read_text(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def write_output(text: str, output: Optional[str]):
    """Write command output to a file, or to stdout when no file is given."""
    if output:
        Path(output).write_text(text, encoding='utf-8')
        logging.info(f"Wrote {output}")
    else:
        print(text)


def cmd_init(db: DatabaseManager, args):
    user = db.get_or_create_user(config.default_user_name)
    SettingsManager().load_settings()
    print(f"Store ready at {db.db_path} (user: {user.name})")


def cmd_save_document(db: DatabaseManager, args):
    document = db.save_document(args.path, read_text(args.path))
    print(f"{document.id}  {document.path}  {document.checksum}")


def cmd_list(db: DatabaseManager, args):
    document = db.get_document_by_path(args.path)
    if document is None:
        print(f"Document not registered: {args.path}")
        return
    for annotation in db.get_annotations_by_document(document.id):
        note = f"  [{annotation.note}]" if annotation.note else ""
        print(f"{annotation.id}  {annotation.user_name}: {annotation.text!r}{note}")


def cmd_export(db: DatabaseManager, args):
    write_output(PackageCodec(db).encode_single(args.annotation_id, args.document), args.output)


def cmd_export_document(db: DatabaseManager, args):
    write_output(PackageCodec(db).encode_document(args.document), args.output)


def cmd_import(db: DatabaseManager, args):
    count = MergeEngine(db).import_package(read_text(args.package), args.document)
    print(f"Imported {count} annotation(s) into {args.document}")


def cmd_migrate(db: DatabaseManager, args):
    result = SidecarImporter(db).migrate_sidecar_files(args.directory)
    print(f"Migration complete: {result.migrated} annotations migrated, {result.errors} errors")


def cmd_whoami(db: DatabaseManager, args):
    user = db.get_or_create_user(config.default_user_name)
    print(f"{user.name} ({user.id})")


def cmd_rename_user(db: DatabaseManager, args):
    user = rename_current_user(db, SettingsManager(), args.name)
    print(f"Renamed user to {user.name}")


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Marginalia - Document Annotation Store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init                                   # Create the store and settings
  python main.py save-document notes.md                 # Register or refresh a document
  python main.py export <annotation-id> notes.md -o a.json
  python main.py import a.json notes.md                 # Merge a package, skipping duplicates
  python main.py migrate ./docs                         # Move legacy .ann sidecars into the store
        """
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the database file (default: from config.yaml)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Marginalia {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the store and default settings").set_defaults(func=cmd_init)

    save = subparsers.add_parser("save-document", help="Register or refresh a document")
    save.add_argument("path")
    save.set_defaults(func=cmd_save_document)

    listing = subparsers.add_parser("list", help="List the annotations of a document")
    listing.add_argument("path")
    listing.set_defaults(func=cmd_list)

    export = subparsers.add_parser("export", help="Export one annotation as a package")
    export.add_argument("annotation_id")
    export.add_argument("document")
    export.add_argument("-o", "--output", help="Write the package to this file")
    export.set_defaults(func=cmd_export)

    export_document = subparsers.add_parser("export-document", help="Export all annotations of a document")
    export_document.add_argument("document")
    export_document.add_argument("-o", "--output", help="Write the package to this file")
    export_document.set_defaults(func=cmd_export_document)

    importing = subparsers.add_parser("import", help="Merge a package into a document")
    importing.add_argument("package")
    importing.add_argument("document")
    importing.set_defaults(func=cmd_import)

    migrate = subparsers.add_parser("migrate", help="Migrate legacy sidecar files from a directory")
    migrate.add_argument("directory")
    migrate.set_defaults(func=cmd_migrate)

    subparsers.add_parser("whoami", help="Show the current user").set_defaults(func=cmd_whoami)

    rename = subparsers.add_parser("rename-user", help="Rename the current user")
    rename.add_argument("name")
    rename.set_defaults(func=cmd_rename_user)

    return parser.parse_args(argv)


def run(args) -> int:
    """Run a parsed command against the store and return the exit status."""
    db_path = args.db or config.database_path

    try:
        with DatabaseManager(db_path) as db:
            db.initialize_database()
            args.func(db, args)
    except (MarginaliaError, OSError) as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"Error: {e}")
        return 1

    return 0


def main():
    """Main entry point."""
    args = parse_arguments()
    setup_logging()
    sys.exit(run(args))


if __name__ == "__main__":
    main()

"""Command-line interface for extrepo.

This module lists the categories and extensions offered by the configured
repositories, resolves extension packages and refreshes listings.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional, Tuple

from extrepo.__version__ import __version__
from extrepo.core.config_manager import ConfigManager
from extrepo.core.logging_manager import LoggingManager
from extrepo.core.repository_manager import RepositoryManager
from extrepo.utils.exceptions import ExtrepoError


def _open_repositories(args: argparse.Namespace) -> Tuple[ConfigManager, LoggingManager, RepositoryManager]:
    """Set up configuration, logging and repositories for a command.

    With ``--repo-base`` the configured repositories are replaced by that
    single repository.
    """
    config_manager = ConfigManager(config_path=args.config)
    config_manager.initialize()

    logging_manager = LoggingManager(config_manager)
    logging_manager.initialize()
    logging_manager.set_console_level(args.log_level)

    repository_manager = RepositoryManager(config_manager, logging_manager)
    repository_manager.initialize()

    if args.repo_base:
        for repository in repository_manager.get_all_repositories():
            repository_manager.unregister_repository(repository.repo_id)
        repository_manager.register_repository(repository_manager.create_repository({
            "id": args.repo_id,
            "type": args.repo_type,
            "base": args.repo_base,
        }))

    return config_manager, logging_manager, repository_manager


def _close(*managers: object) -> None:
    for manager in reversed(managers):
        manager.shutdown()


def categories_command(args: argparse.Namespace) -> int:
    """Handle the categories command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        managers = _open_repositories(args)
        try:
            categories = managers[2].list_categories()
        finally:
            _close(*managers)

        if not categories:
            print("No extension categories available.")
            return 0

        for category in categories:
            print(category)
        return 0

    except (ExtrepoError, ValueError) as e:
        print(f"Error listing categories: {e}", file=sys.stderr)
        return 1


def list_command(args: argparse.Namespace) -> int:
    """Handle the list command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        managers = _open_repositories(args)
        try:
            listings = managers[2].list_extensions(args.category)
        finally:
            _close(*managers)

        if args.json:
            print(json.dumps(
                {
                    repo_id: {key: spec.to_dict() for key, spec in listing.items()}
                    for repo_id, listing in listings.items()
                },
                indent=2,
            ))
            return 0

        total = sum(len(listing) for listing in listings.values())
        if total == 0:
            print("No extensions available.")
            return 0

        for repo_id, listing in listings.items():
            print(f"Repository {repo_id} ({len(listing)}):")
            for key in sorted(listing):
                spec = listing[key]
                print(f"  - {key}: {spec.metadata.gav} [{spec.category}]")
                print(f"    {spec.description}")
            print()

        return 0

    except (ExtrepoError, ValueError) as e:
        print(f"Error listing extensions: {e}", file=sys.stderr)
        return 1


def resolve_command(args: argparse.Namespace) -> int:
    """Handle the resolve command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        managers = _open_repositories(args)
        try:
            spec = managers[2].find_extension(args.key, args.category)
            if spec is None:
                print(f"Extension not found: {args.key}", file=sys.stderr)
                return 1

            package = spec.get_package()
        finally:
            _close(*managers)

        print(f"Resolved {spec.metadata.gav} from {spec.repository.repo_id}")
        print(f"Package: {package}")
        return 0

    except (ExtrepoError, ValueError) as e:
        print(f"Error resolving extension: {e}", file=sys.stderr)
        return 1


def refresh_command(args: argparse.Namespace) -> int:
    """Handle the refresh command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        managers = _open_repositories(args)
        try:
            results = managers[2].refresh_all()
        finally:
            _close(*managers)

        for repo_id, success in results.items():
            print(f"{repo_id}: {'refreshed' if success else 'failed'}")
        return 0 if all(results.values()) else 1

    except (ExtrepoError, ValueError) as e:
        print(f"Error refreshing repositories: {e}", file=sys.stderr)
        return 1


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        prog="extrepo",
        description="Extension repository CLI",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default="extrepo.yaml", help="Configuration file (YAML or JSON)")
    parser.add_argument("--log-level", default="warning", help="Console log level")
    parser.add_argument("--repo-type", choices=["file", "maven"], default="file",
                        help="Type of the repository given by --repo-base")
    parser.add_argument("--repo-base", help="Use this repository instead of the configured ones")
    parser.add_argument("--repo-id", default="cli", help="Id of the repository given by --repo-base")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("categories", help="List extension categories")

    list_parser = subparsers.add_parser("list", help="List extensions")
    list_parser.add_argument("--category", help="Only list this category")
    list_parser.add_argument("--json", action="store_true", help="Print the listing as JSON")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve an extension package")
    resolve_parser.add_argument("key", help="Listing key of the extension")
    resolve_parser.add_argument("--category", help="Only search this category")

    subparsers.add_parser("refresh", help="Rescan every repository")

    args = parser.parse_args(args)

    if args.command == "categories":
        return categories_command(args)
    elif args.command == "list":
        return list_command(args)
    elif args.command == "resolve":
        return resolve_command(args)
    elif args.command == "refresh":
        return refresh_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Utility for initializing the sales tracker snapshot workbook.

The module doubles as a script (``sales-setup``) and as a library used by
tests or other tooling. Shared helpers keep the workbook bootstrap logic
consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
import getpass
from pathlib import Path
from typing import Optional, Sequence
import sys

from . import accounts, core_logic, data_manager
from .constants import DEFAULT_BCRYPT_ROUNDS, EXPECTED_SCHEMA_VERSION

CONFIG_FILE = data_manager.CONFIG_FILE_NAME


def create_master_workbook(
    destination: Path,
    *,
    admin_password: str,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    store_name: str = "Sales Tracker",
    with_sample_data: bool = False,
    overwrite: bool = False,
) -> Path:
    """Create the snapshot workbook at ``destination``.

    The workbook holds the ``admin`` account and, when ``with_sample_data`` is
    set, the demonstration users and sales. When ``overwrite`` is ``False``
    (the default) this function raises ``FileExistsError`` if the target
    already exists. An admin password bcrypt cannot hash raises
    ``ValueError`` before anything is written.
    """

    accounts.validate_password(admin_password)
    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing workbook: {destination}"
        )

    settings = data_manager.ConfigSettings(
        data_file=destination,
        store_name=store_name,
        schema_version=EXPECTED_SCHEMA_VERSION,
        bcrypt_rounds=bcrypt_rounds,
    )
    context = core_logic.create_runtime_context(settings, admin_password=admin_password)
    if with_sample_data:
        core_logic.seed_sample_data(context)
    core_logic.persist_context(context)
    return destination


def run_from_config(
    config_path: Path,
    *,
    admin_password: str,
    with_sample_data: bool = False,
    overwrite: bool = False,
) -> Path:
    """Create the workbook named by ``config.ini``."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_master_workbook(
        settings.data_file,
        admin_password=admin_password,
        bcrypt_rounds=settings.bcrypt_rounds,
        store_name=settings.store_name,
        with_sample_data=with_sample_data,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the sales tracker workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--admin-password",
        default=None,
        help="Password for the admin account (prompted when omitted).",
    )
    parser.add_argument(
        "--with-sample-data",
        action="store_true",
        help="Seed demonstration users and sales.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()
    admin_password: Optional[str] = args.admin_password or getpass.getpass("Admin password: ")
    try:
        accounts.validate_password(admin_password)
    except ValueError as exc:
        print(f"\n[ERROR] Invalid admin password: {exc}")
        return 1

    print("--- Sales Tracker Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(
            config_path,
            admin_password=admin_password,
            with_sample_data=args.with_sample_data,
            overwrite=args.force,
        )
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except (KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())

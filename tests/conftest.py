"""Shared pytest fixtures and utilities for sales tracker tests."""

from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from sales_tracker import constants, core_logic, data_manager  # noqa: E402
from sales_tracker.setup_workbook import create_master_workbook  # noqa: E402

# bcrypt's minimum cost keeps the suite fast.
TEST_BCRYPT_ROUNDS = 4
ADMIN_PASSWORD = "admin-secret"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Security]\n"
    "BcryptRounds = {bcrypt_rounds}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    store_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Store",
        schema_version: str = constants.EXPECTED_SCHEMA_VERSION,
        with_sample_data: bool = False,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = create_master_workbook(
            bundle_dir / "sales_tracker.xlsx",
            admin_password=ADMIN_PASSWORD,
            bcrypt_rounds=TEST_BCRYPT_ROUNDS,
            store_name=store_name,
            with_sample_data=with_sample_data,
        )
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                store_name=store_name,
                schema_version=schema_version,
                bcrypt_rounds=TEST_BCRYPT_ROUNDS,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide configuration settings for in-memory runtime contexts."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "sales_tracker.xlsx",
        store_name="Test Store",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """Empty context holding only the admin account plus alice and bob."""

    context = core_logic.create_runtime_context(settings, admin_password=ADMIN_PASSWORD)
    assert core_logic.register_user(context, "alice", "alice-pw")
    assert core_logic.register_user(context, "bob", "bob-pw")
    return context


@pytest.fixture
def admin(context: core_logic.RuntimeContext) -> core_logic.Session:
    return core_logic.login(context, constants.ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def alice(context: core_logic.RuntimeContext) -> core_logic.Session:
    return core_logic.login(context, "alice", "alice-pw")


@pytest.fixture
def bob(context: core_logic.RuntimeContext) -> core_logic.Session:
    return core_logic.login(context, "bob", "bob-pw")


@pytest.fixture
def make_command() -> Callable[..., core_logic.SaleCommand]:
    """Factory for valid sale commands with overridable fields."""

    def _make(**overrides) -> core_logic.SaleCommand:
        values = {
            "customer_name": "Jane Doe",
            "item": "Laptop",
            "unit_price": Decimal("100.00"),
            "quantity": 1,
            "status": constants.OrderStatus.PENDING,
            "payment_status": constants.PaymentStatus.UNPAID,
            "contact_number": "555-0100",
        }
        values.update(overrides)
        return core_logic.SaleCommand(**values)

    return _make

"""Unit tests describing the access-control layer over an in-memory context."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from sales_tracker import constants, core_logic, data_manager, records
from sales_tracker.constants import OrderStatus, PaymentStatus, Role


@pytest.fixture
def set_fixed_datetime(monkeypatch):
    """Patch core_logic.datetime.now to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply


def _ids(sales):
    return [record.sale_id for record in sales]


# ---------------------------------------------------------------------------
# Accounts and sessions
# ---------------------------------------------------------------------------


def test_create_runtime_context_adds_admin_account(settings):
    context = core_logic.create_runtime_context(settings, admin_password="pw")

    account = context.registry.accounts[0]
    assert account.username == constants.ADMIN_USERNAME
    assert account.role is Role.ADMIN
    assert account.password_hash != "pw"
    assert core_logic.ensure_admin_account(context, "other") is False


def test_register_user_rejects_duplicates_and_reserved_names(context):
    assert core_logic.register_user(context, "alice", "again") is False
    assert core_logic.register_user(context, constants.SYSTEM_OWNER, "pw") is False
    assert core_logic.register_user(context, "", "pw") is False
    assert core_logic.register_user(context, "carol", "") is False
    assert core_logic.register_user(context, "Alice", "pw") is True


def test_registered_users_get_standard_role(context, alice):
    assert alice.role is Role.STANDARD
    assert not alice.is_admin


def test_login_with_wrong_password_returns_none(context, caplog):
    caplog.set_level(logging.WARNING)

    assert core_logic.login(context, "alice", "nope") is None
    assert core_logic.login(context, "nobody", "pw") is None
    assert "Login failed" in caplog.text


def test_login_issues_distinct_tokens(context):
    first = core_logic.login(context, "alice", "alice-pw")
    second = core_logic.login(context, "alice", "alice-pw")

    assert first.token and second.token
    assert first.token != second.token


def test_logout_invalidates_session(context, alice, make_command):
    result = core_logic.logout(context, alice)

    assert result is core_logic.GUEST_SESSION
    assert core_logic.record_sale(context, alice, make_command()) is None


def test_forged_session_is_treated_as_guest(context, alice, make_command):
    core_logic.record_sale(context, alice, make_command())
    forged = core_logic.Session(username="mallory", role=Role.ADMIN, token="guessed")

    assert core_logic.list_sales(context, forged) == []
    assert core_logic.get_sale(context, forged, "SALE001") is None
    assert core_logic.delete_sale(context, forged, "SALE001") is False


def test_session_with_escalated_role_is_rejected(context, alice):
    escalated = core_logic.Session(username=alice.username, role=Role.ADMIN, token=alice.token)

    assert core_logic.list_user_summaries(context, escalated) == []


# ---------------------------------------------------------------------------
# Sales CRUD
# ---------------------------------------------------------------------------


def test_guest_cannot_record_sales(context, make_command):
    assert core_logic.record_sale(context, core_logic.GUEST_SESSION, make_command()) is None
    assert context.store.sales == []


def test_record_sale_assigns_owner_and_id(context, alice, admin, make_command, set_fixed_datetime):
    moment = set_fixed_datetime(datetime(2024, 6, 1, 9, 30, tzinfo=UTC))

    own = core_logic.record_sale(context, alice, make_command())
    system = core_logic.record_sale(context, admin, make_command())

    assert own.sale_id == "SALE001"
    assert own.owner == "alice"
    assert own.sale_date == moment
    assert system.sale_id == "SALE002"
    assert system.owner == constants.SYSTEM_OWNER


def test_record_sale_strips_whitespace(context, alice, make_command):
    record = core_logic.record_sale(context, alice, make_command(customer_name="  Jane  ", item=" Pen "))

    assert record.customer_name == "Jane"
    assert record.item == "Pen"


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": 0},
        {"quantity": -2},
        {"quantity": True},
        {"quantity": 1.5},
        {"unit_price": Decimal("-0.01")},
        {"unit_price": Decimal("NaN")},
        {"unit_price": 9.99},
        {"customer_name": "   "},
        {"item": ""},
        {"status": "Shipped"},
        {"payment_status": "Maybe"},
    ],
)
def test_invalid_sale_is_rejected_without_consuming_an_id(context, alice, make_command, overrides):
    assert core_logic.record_sale(context, alice, make_command(**overrides)) is None
    assert context.store.sales == []

    assert core_logic.record_sale(context, alice, make_command()).sale_id == "SALE001"


def test_validate_sale_command_raises_invalid_sale_error(make_command):
    with pytest.raises(core_logic.InvalidSaleError):
        core_logic.validate_sale_command(make_command(quantity=0))
    assert issubclass(core_logic.InvalidSaleError, ValueError)


def test_zero_price_is_allowed(context, alice, make_command):
    record = core_logic.record_sale(context, alice, make_command(unit_price=Decimal("0")))

    assert record is not None
    assert record.total == Decimal("0")


def test_users_cannot_read_each_others_sales(context, alice, bob, make_command, caplog):
    core_logic.record_sale(context, alice, make_command())
    caplog.set_level(logging.WARNING)

    assert core_logic.get_sale(context, alice, "SALE001") is not None
    assert core_logic.get_sale(context, bob, "SALE001") is None
    assert core_logic.get_sale(context, core_logic.GUEST_SESSION, "SALE001") is None
    assert "Unauthorized access attempt" in caplog.text


def test_admin_sees_every_sale(context, alice, bob, admin, make_command):
    core_logic.record_sale(context, alice, make_command())
    core_logic.record_sale(context, bob, make_command())

    assert _ids(core_logic.list_sales(context, admin)) == ["SALE001", "SALE002"]
    assert _ids(core_logic.list_sales(context, alice)) == ["SALE001"]
    assert core_logic.list_sales(context, core_logic.GUEST_SESSION) == []


def test_system_owned_sales_are_admin_only(context, admin, alice, make_command):
    core_logic.record_sale(context, admin, make_command())

    assert core_logic.get_sale(context, admin, "SALE001") is not None
    assert core_logic.get_sale(context, alice, "SALE001") is None


def test_ownerless_sale_is_never_self_owned(context, admin, make_command):
    record = core_logic.build_sale_record(
        make_command(),
        sale_id="SALE500",
        owner=None,
        sale_date=datetime(2024, 1, 1, tzinfo=UTC),
    )
    records.add_sale(context.store, record)
    nobody = core_logic.Session(username=None, role=None)

    assert core_logic.get_sale(context, nobody, "SALE500") is None
    assert core_logic.get_sale(context, admin, "SALE500") is not None


def test_get_sale_matches_id_exactly(context, alice, make_command):
    core_logic.record_sale(context, alice, make_command())

    assert core_logic.get_sale(context, alice, "sale001") is None


def test_update_sale_preserves_id_owner_and_date(context, alice, make_command):
    original = core_logic.record_sale(context, alice, make_command())

    assert core_logic.update_sale(
        context,
        alice,
        "SALE001",
        make_command(customer_name="John Roe", quantity=4, status=OrderStatus.COMPLETED),
    )
    updated = core_logic.get_sale(context, alice, "SALE001")
    assert updated.customer_name == "John Roe"
    assert updated.quantity == 4
    assert updated.status is OrderStatus.COMPLETED
    assert updated.owner == "alice"
    assert updated.sale_date == original.sale_date


def test_update_sale_refused_for_other_owner(context, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command())

    assert core_logic.update_sale(context, bob, "SALE001", make_command(item="Stolen")) is False
    assert core_logic.get_sale(context, alice, "SALE001").item == "Laptop"


def test_update_sale_rejects_invalid_command(context, alice, make_command):
    core_logic.record_sale(context, alice, make_command())

    assert core_logic.update_sale(context, alice, "SALE001", make_command(quantity=-1)) is False
    assert core_logic.update_sale(context, alice, "SALE404", make_command()) is False


def test_admin_update_keeps_original_owner(context, alice, admin, make_command):
    core_logic.record_sale(context, alice, make_command())

    assert core_logic.update_sale(context, admin, "SALE001", make_command(item="Desk"))
    assert core_logic.get_sale(context, alice, "SALE001").owner == "alice"


def test_delete_then_undo_restores_record(context, alice, make_command):
    original = core_logic.record_sale(
        context,
        alice,
        make_command(status=OrderStatus.COMPLETED, payment_status=PaymentStatus.PAID, quantity=3),
    )
    core_logic.record_sale(context, alice, make_command(item="Pen"))

    assert core_logic.delete_sale(context, alice, "SALE001") is True
    assert core_logic.get_sale(context, alice, "SALE001") is None

    restored = core_logic.undo_delete(context, alice)
    assert restored == original
    assert restored.owner == "alice"
    assert _ids(core_logic.list_sales(context, alice)) == ["SALE002", "SALE001"]


def test_delete_refused_for_other_owner(context, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command())

    assert core_logic.delete_sale(context, bob, "SALE001") is False
    assert core_logic.delete_sale(context, alice, "SALE404") is False
    assert len(context.store.sales) == 1


def test_refused_undo_leaves_stack_intact(context, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command())
    core_logic.delete_sale(context, alice, "SALE001")

    assert core_logic.undo_delete(context, bob) is None
    assert records.peek_deleted(context.store).sale_id == "SALE001"
    assert core_logic.undo_delete(context, alice).sale_id == "SALE001"


def test_undo_with_empty_stack_returns_none(context, alice):
    assert core_logic.undo_delete(context, alice) is None


def test_ids_are_not_reused_after_delete(context, alice, make_command):
    core_logic.record_sale(context, alice, make_command())
    core_logic.delete_sale(context, alice, "SALE001")

    assert core_logic.record_sale(context, alice, make_command()).sale_id == "SALE002"


def test_returned_lists_do_not_alias_store(context, alice, make_command):
    core_logic.record_sale(context, alice, make_command())

    listing = core_logic.list_sales(context, alice)
    listing.clear()

    assert len(core_logic.list_sales(context, alice)) == 1


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------


def test_delete_user_cascades_sales_and_sessions(context, admin, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command())
    core_logic.record_sale(context, bob, make_command())
    core_logic.record_sale(context, alice, make_command())

    assert core_logic.delete_user(context, admin, "alice") is True

    assert _ids(core_logic.list_sales(context, admin)) == ["SALE002"]
    assert core_logic.login(context, "alice", "alice-pw") is None
    assert core_logic.list_sales(context, alice) == []
    assert core_logic.undo_delete(context, admin) is None


def test_delete_user_drops_their_undo_entries(context, admin, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command(customer_name="Secret Client"))
    core_logic.record_sale(context, bob, make_command())
    core_logic.delete_sale(context, alice, "SALE001")
    core_logic.delete_sale(context, bob, "SALE002")

    assert core_logic.delete_user(context, admin, "alice") is True
    assert [record.sale_id for record in records.deleted_sales(context.store)] == ["SALE002"]

    assert core_logic.register_user(context, "alice", "new-pw")
    newcomer = core_logic.login(context, "alice", "new-pw")
    assert core_logic.undo_delete(context, newcomer) is None
    assert core_logic.undo_delete(context, admin).sale_id == "SALE002"
    assert core_logic.undo_delete(context, admin) is None


def test_register_user_rejects_password_bcrypt_cannot_hash(context, caplog):
    caplog.set_level(logging.WARNING)

    assert core_logic.register_user(context, "longpw", "x" * 100) is False
    assert core_logic.register_user(context, "multibyte", "é" * 37) is False
    assert core_logic.register_user(context, "exact", "x" * 72) is True
    assert "72 bytes" in caplog.text


def test_login_with_overlong_password_fails_cleanly(context):
    assert core_logic.login(context, "alice", "x" * 100) is None


def test_ensure_admin_account_rejects_overlong_password(settings):
    context = core_logic.create_runtime_context(settings, admin_password="x" * 100)

    assert context.registry.accounts == []


def test_delete_user_requires_admin(context, alice, bob):
    assert core_logic.delete_user(context, alice, "bob") is False
    assert core_logic.delete_user(context, core_logic.GUEST_SESSION, "bob") is False
    assert core_logic.login(context, "bob", "bob-pw") is not None


def test_admin_account_cannot_be_deleted(context, admin):
    assert core_logic.delete_user(context, admin, constants.ADMIN_USERNAME) is False
    assert core_logic.delete_user(context, admin, "ghost") is False


def test_list_user_summaries_excludes_admin_and_sorts(context, admin, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command(quantity=1))
    core_logic.record_sale(context, bob, make_command(quantity=5))
    core_logic.record_sale(context, bob, make_command(quantity=1, status=OrderStatus.COMPLETED))

    summaries = core_logic.list_user_summaries(context, admin)
    assert [summary.username for summary in summaries] == ["alice", "bob"]

    by_items = core_logic.list_user_summaries(context, admin, sort_by="items-sold")
    assert [(summary.username, summary.items_sold) for summary in by_items] == [("bob", 6), ("alice", 1)]
    assert by_items[0].pending_orders == 1
    assert by_items[0].total_orders == 2


def test_list_user_summaries_refused_for_standard_user(context, alice):
    assert core_logic.list_user_summaries(context, alice) == []


def test_binary_search_user_is_case_insensitive(context, admin, alice):
    summary = core_logic.binary_search_user(context, admin, "BOB")

    assert summary.username == "bob"
    assert core_logic.binary_search_user(context, admin, "zed") is None
    assert core_logic.binary_search_user(context, alice, "bob") is None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@pytest.fixture
def populated(context, admin, alice, bob, make_command):
    core_logic.record_sale(context, alice, make_command(customer_name="Jane Smith", unit_price=Decimal("30")))
    core_logic.record_sale(
        context,
        bob,
        make_command(customer_name="John Smith", payment_status=PaymentStatus.PAID, quantity=3),
    )
    core_logic.record_sale(
        context,
        alice,
        make_command(
            customer_name="Mary Major",
            unit_price=Decimal("10"),
            quantity=5,
            status=OrderStatus.COMPLETED,
            payment_status=PaymentStatus.PAID,
        ),
    )
    core_logic.record_sale(context, admin, make_command(customer_name="Walk-in smith"))
    return context


def test_customer_search_is_case_insensitive_and_scoped(populated, alice, admin):
    assert _ids(core_logic.search_by_customer_name(populated, alice, "SMITH")) == ["SALE001"]
    assert _ids(core_logic.search_by_customer_name(populated, admin, "smith", all_records=True)) == [
        "SALE001",
        "SALE002",
        "SALE004",
    ]


def test_unrestricted_search_refused_for_standard_user(populated, alice, caplog):
    caplog.set_level(logging.WARNING)

    assert core_logic.search_by_customer_name(populated, alice, "smith", all_records=True) == []
    assert core_logic.search_by_status(populated, alice, "Pending", all_records=True) == []
    assert core_logic.search_by_payment_status(populated, alice, "Paid", all_records=True) == []
    assert core_logic.binary_search_by_id(populated, alice, "SALE001", all_records=True) is None
    assert "Unauthorized unrestricted" in caplog.text


def test_session_search_for_admin_covers_only_admin_owned(populated, admin):
    assert core_logic.search_by_customer_name(populated, admin, "smith") == []


def test_status_searches_accept_any_case(populated, alice, admin):
    assert _ids(core_logic.search_by_status(populated, alice, "completed")) == ["SALE003"]
    assert _ids(core_logic.search_by_payment_status(populated, admin, "PAID", all_records=True)) == [
        "SALE002",
        "SALE003",
    ]
    assert core_logic.search_by_status(populated, admin, "Shipped", all_records=True) == []


def test_binary_search_by_id_is_case_insensitive(populated, alice, bob, admin):
    assert core_logic.binary_search_by_id(populated, alice, "sale003").sale_id == "SALE003"
    assert core_logic.binary_search_by_id(populated, bob, "SALE001") is None
    assert core_logic.binary_search_by_id(populated, admin, "SALE002", all_records=True).owner == "bob"


def test_binary_search_agrees_with_linear_scan(context, admin, alice, make_command):
    for _ in range(12):
        core_logic.record_sale(context, alice, make_command())
    core_logic.delete_sale(context, alice, "SALE004")
    core_logic.delete_sale(context, alice, "SALE009")
    visible = core_logic.list_sales(context, admin)

    for number in range(0, 15):
        sale_id = records.format_sale_id(number)
        expected = next((record for record in visible if record.sale_id.lower() == sale_id.lower()), None)
        assert core_logic.binary_search_by_id(context, admin, sale_id, all_records=True) == expected


def test_sort_sales_orders_without_touching_store(populated, admin):
    by_price = core_logic.sort_sales(populated, admin, "price")
    by_quantity = core_logic.sort_sales(populated, admin, constants.SaleSortKey.QUANTITY)

    assert [record.unit_price for record in by_price] == sorted(record.unit_price for record in by_price)
    assert [record.quantity for record in by_quantity] == [1, 1, 3, 5]
    assert _ids(core_logic.list_sales(populated, admin)) == ["SALE001", "SALE002", "SALE003", "SALE004"]
    assert core_logic.sort_sales(populated, admin, "colour") == []


def test_sort_sales_by_date_newest_first(context, alice, make_command):
    for day in (3, 1, 2):
        core_logic.record_sale(context, alice, make_command(sale_date=datetime(2024, 1, day, tzinfo=UTC)))

    ordered = core_logic.sort_sales(context, alice, "date")
    assert [record.sale_date.day for record in ordered] == [3, 2, 1]


def test_recent_sales_keeps_last_five(context, alice, bob, admin, make_command):
    for index in range(7):
        session = alice if index % 2 == 0 else bob
        core_logic.record_sale(context, session, make_command())

    assert _ids(core_logic.recent_sales(context, admin)) == ["SALE003", "SALE004", "SALE005", "SALE006", "SALE007"]
    assert _ids(core_logic.recent_sales(context, alice)) == ["SALE003", "SALE005", "SALE007"]
    assert core_logic.recent_sales(context, core_logic.GUEST_SESSION) == []


def test_recent_sales_hides_deleted_records(context, alice, make_command):
    core_logic.record_sale(context, alice, make_command())
    core_logic.record_sale(context, alice, make_command())
    core_logic.delete_sale(context, alice, "SALE001")

    assert _ids(core_logic.recent_sales(context, alice)) == ["SALE002"]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def test_dashboard_for_empty_store(context, alice):
    stats = core_logic.calculate_dashboard_stats(context, alice)

    assert stats == core_logic.DashboardStats(total_orders=0, pending_orders=0, items_sold=0)
    assert stats.display_values() == ("0", "0", "0")


def test_dashboard_counts_visible_sales(context, alice, bob, admin, make_command):
    core_logic.record_sale(context, alice, make_command(quantity=1))
    core_logic.record_sale(context, alice, make_command(quantity=2, status=OrderStatus.COMPLETED))
    core_logic.record_sale(context, alice, make_command(quantity=3, status=OrderStatus.CANCELLED))
    core_logic.record_sale(context, bob, make_command(quantity=10))

    assert core_logic.calculate_dashboard_stats(context, alice).display_values() == ("3", "1", "6")
    assert core_logic.calculate_dashboard_stats(context, admin).display_values() == ("4", "2", "16")
    assert core_logic.calculate_dashboard_stats(context, core_logic.GUEST_SESSION).display_values() == ("0", "0", "0")


def test_total_revenue_uses_decimal(populated, alice, admin):
    assert core_logic.calculate_total_revenue(populated, alice) == Decimal("80.00")
    assert core_logic.calculate_total_revenue(populated, admin) == Decimal("480.00")
    assert core_logic.calculate_total_revenue(populated, core_logic.GUEST_SESSION) == Decimal("0")


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def test_concurrent_record_sale_allocates_unique_ids(context, alice, bob, make_command):
    def worker(session):
        for _ in range(25):
            core_logic.record_sale(context, session, make_command())

    threads = [threading.Thread(target=worker, args=(session,)) for session in (alice, bob, alice, bob)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    sale_ids = _ids(context.store.sales)
    assert len(sale_ids) == 100
    assert len(set(sale_ids)) == 100
    assert context.store.next_sequence == 101


# ---------------------------------------------------------------------------
# Persistence and sample data
# ---------------------------------------------------------------------------


def test_seed_sample_data_is_idempotent(settings):
    context = core_logic.create_runtime_context(settings, admin_password="pw")

    assert core_logic.seed_sample_data(context) == 13
    assert core_logic.seed_sample_data(context) == 0
    assert len(context.store.sales) == 13
    alice = core_logic.login(context, "alice", "alice123")
    assert len(core_logic.list_sales(context, alice)) == 4


def test_persist_and_reload_round_trip(config_file, make_command):
    context = core_logic.load_runtime_context(config_file)
    assert core_logic.register_user(context, "alice", "alice-pw")
    alice = core_logic.login(context, "alice", "alice-pw")
    core_logic.record_sale(context, alice, make_command(unit_price=Decimal("19.99")))
    core_logic.record_sale(context, alice, make_command())
    core_logic.delete_sale(context, alice, "SALE002")
    core_logic.persist_context(context)

    reloaded = core_logic.load_runtime_context(config_file)
    alice = core_logic.login(reloaded, "alice", "alice-pw")

    sale = core_logic.get_sale(reloaded, alice, "SALE001")
    assert sale.unit_price == Decimal("19.99")
    assert sale.owner == "alice"
    assert core_logic.undo_delete(reloaded, alice).sale_id == "SALE002"
    assert core_logic.record_sale(reloaded, alice, make_command()).sale_id == "SALE003"


def test_sessions_do_not_survive_reload(config_file):
    context = core_logic.load_runtime_context(config_file)
    admin = core_logic.login(context, constants.ADMIN_USERNAME, "admin-secret")

    reloaded = core_logic.load_runtime_context(config_file)

    assert core_logic.list_user_summaries(reloaded, admin) == []


def test_load_runtime_context_rejects_schema_mismatch(config_file):
    context = core_logic.load_runtime_context(config_file)
    workbook = data_manager.build_snapshot_workbook(
        sales=[],
        deleted=[],
        users=context.registry.accounts,
        next_sequence=1,
        schema_version="0.9.0",
    )
    data_manager.save_workbook(workbook, context.settings.data_file)

    with pytest.raises(RuntimeError):
        core_logic.load_runtime_context(config_file)


def test_ensure_schema_version_checks_configuration(settings):
    context = core_logic.create_runtime_context(settings)
    core_logic.ensure_schema_version(context)

    mismatched = core_logic.create_runtime_context(
        data_manager.ConfigSettings(
            data_file=settings.data_file,
            store_name=settings.store_name,
            schema_version="2.0.0",
        )
    )
    with pytest.raises(RuntimeError):
        core_logic.ensure_schema_version(mismatched)

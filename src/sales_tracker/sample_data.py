"""Demonstration users and sales used to seed a fresh context."""

from __future__ import annotations

from decimal import Decimal

from .constants import OrderStatus, PaymentStatus


SAMPLE_USERS: tuple[tuple[str, str], ...] = (
    ("alice", "alice123"),
    ("bob", "bob456"),
    ("charlie", "charlie789"),
    ("diana", "diana012"),
    ("edward", "edward345"),
)

# owner, customer, item, unit price, quantity, status, payment, days ago, contact
SAMPLE_SALES: tuple[tuple[str, str, str, Decimal, int, OrderStatus, PaymentStatus, int, str], ...] = (
    ("alice", "Michael Johnson", "Monitor", Decimal("299.99"), 1, OrderStatus.COMPLETED, PaymentStatus.PAID, 5, "9112233445"),
    ("alice", "Sarah Williams", "USB Cable", Decimal("12.99"), 5, OrderStatus.COMPLETED, PaymentStatus.PAID, 7, "9334455667"),
    ("bob", "David Miller", "Tablet", Decimal("349.99"), 2, OrderStatus.PENDING, PaymentStatus.UNPAID, 2, "9777777777"),
    ("charlie", "Jennifer Brown", "Printer", Decimal("189.99"), 1, OrderStatus.COMPLETED, PaymentStatus.PAID, 4, "9000000001"),
    ("diana", "Robert Garcia", "Gaming Mouse", Decimal("59.99"), 1, OrderStatus.COMPLETED, PaymentStatus.PAID, 6, "9000000005"),
    ("edward", "Lisa Martinez", "Monitor Arm", Decimal("89.99"), 1, OrderStatus.COMPLETED, PaymentStatus.PAID, 7, "9000000010"),
    ("alice", "Thomas Anderson", "Keyboard", Decimal("45.99"), 1, OrderStatus.COMPLETED, PaymentStatus.PAID, 1, "9988776655"),
    ("bob", "Emily Davis", "Mouse", Decimal("25.50"), 3, OrderStatus.PENDING, PaymentStatus.UNPAID, 3, "9123456780"),
    ("charlie", "Daniel Wilson", "Laptop", Decimal("850.00"), 2, OrderStatus.COMPLETED, PaymentStatus.PAID, 2, "9876543210"),
    ("diana", "Patricia Taylor", "Webcam", Decimal("49.99"), 1, OrderStatus.COMPLETED, PaymentStatus.PAID, 1, "9223344556"),
    ("edward", "Christopher Lee", "Headphones", Decimal("79.99"), 2, OrderStatus.COMPLETED, PaymentStatus.PAID, 4, "9334455667"),
    ("alice", "Amanda Scott", "External SSD", Decimal("129.99"), 1, OrderStatus.PENDING, PaymentStatus.UNPAID, 0, "9445566778"),
    ("bob", "Kevin White", "Power Bank", Decimal("39.99"), 3, OrderStatus.COMPLETED, PaymentStatus.PAID, 1, "9556677889"),
)

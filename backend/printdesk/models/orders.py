from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..schemas import PrintOptions
from ..time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_FAILED = "failed"

PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_FAILED,
)


class Order(db.Model):
    """
    A single print submission.

    WHY: The order row is the serialization point for every status and
    payment change. version_id gives optimistic compare-and-set on top of
    the row lock taken by order_service.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_pages >= 1", name="ck_orders_total_pages"),
        db.CheckConstraint("color_pages >= 0", name="ck_orders_color_pages"),
        db.CheckConstraint("bw_pages >= 0", name="ck_orders_bw_pages"),
        db.CheckConstraint("color_pages + bw_pages = total_pages", name="ck_orders_page_split"),
        db.CheckConstraint("price >= 0", name="ck_orders_price"),
        db.UniqueConstraint("file_reference", name="uq_orders_file_reference"),
        db.Index("ix_orders_roll_created", "roll_number", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Public identifier handed to the customer
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)

    roll_number = db.Column(db.String(64), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_reference = db.Column(db.String(255), nullable=False)

    total_pages = db.Column(db.Integer, nullable=False)
    color_pages = db.Column(db.Integer, nullable=False, default=0)
    bw_pages = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)
    print_options = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    payment_id = db.Column(db.String(64), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} token={self.token!r} status={self.status}/{self.payment_status}>"

    @property
    def options(self) -> PrintOptions:
        return PrintOptions.from_payload(self.print_options or {})

    @property
    def price_decimal(self) -> Decimal:
        return Decimal(str(self.price)).quantize(Decimal("0.01"))

    def to_public_dict(self) -> dict:
        """Tracking view: no file reference, no payment id."""
        return {
            "id": self.id,
            "token": self.token,
            "rollNumber": self.roll_number,
            "totalPages": self.total_pages,
            "colorPages": self.color_pages,
            "bwPages": self.bw_pages,
            "price": float(self.price_decimal),
            "status": self.status,
            "paymentStatus": self.payment_status,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_dict(self) -> dict:
        data = self.to_public_dict()
        data.update({
            "fileName": self.file_name,
            "fileReference": self.file_reference,
            "printOptions": self.options.to_dict(),
            "paymentId": self.payment_id,
        })
        return data

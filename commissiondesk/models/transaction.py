"""
CommissionSalesTransaction model: a commissionable sale attributed to an employee.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from commissiondesk.models.base import Base, TenantMixin, TimestampMixin, str_enum
from commissiondesk.models.plan import ProductCategory


class TransactionType(str, Enum):
    """Source document of a sale."""
    QUOTE = "quote"
    INVOICE = "invoice"
    CONTRACT = "contract"
    SERVICE_CALL = "service_call"


class CommissionSalesTransaction(Base, TimestampMixin, TenantMixin):
    """
    One employee's share of one sale.

    Every row of the same sale (transaction_type + transaction_id) carries
    the full sale_amount. commissionable_amount is this row's share.
    """

    __tablename__ = "commission_sales_transactions"
    __table_args__ = (
        Index(
            "ix_commission_sales_transactions_sale",
            "tenant_id",
            "transaction_type",
            "transaction_id",
        ),
        Index(
            "ix_commission_sales_transactions_employee_date",
            "employee_id",
            "transaction_date",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    calculation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("commission_calculations.id"),
        nullable=True,
        index=True,
    )
    employee_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Sale reference
    transaction_type: Mapped[TransactionType] = mapped_column(
        str_enum(TransactionType, "transaction_type"),
        nullable=False,
    )
    transaction_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Id of the quote/invoice/contract/service call",
    )
    transaction_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    customer_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )

    # Amounts
    sale_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    commissionable_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    category: Mapped[ProductCategory] = mapped_column(
        str_enum(ProductCategory, "product_category"),
        nullable=False,
        index=True,
    )
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        comment="Stamped by the calculation engine",
    )
    commission_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Stamped by the calculation engine",
    )

    # Split
    is_split_commission: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    split_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("100.00"),
        nullable=False,
    )
    primary_employee_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    # Processing
    is_processed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Chargeback
    is_charged_back: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    charged_back_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    chargeback_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    @property
    def sale_key(self) -> tuple:
        return (self.transaction_type, self.transaction_id)

    def __repr__(self) -> str:
        return (
            f"<CommissionSalesTransaction(id={self.id}, employee_id='{self.employee_id}', "
            f"{self.transaction_type}:{self.transaction_id}, amount={self.commissionable_amount})>"
        )

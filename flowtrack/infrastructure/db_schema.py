from sqlalchemy import Table, Column, String, Integer, DateTime, JSON, MetaData
from sqlalchemy.sql import func

metadata = MetaData()

ORDER_SEQUENCE_NAME = "orders"


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("customer_name", String, nullable=False),
    Column("product_name", String, nullable=False, default=""),
    Column("status", String, nullable=False, index=True),
    Column("priority", String, nullable=False, default="Medium"),
    Column("digitizer_id", String, nullable=True),
    Column("vendor_id", String, nullable=True),
    Column("digitizer_status", String, nullable=True),
    Column("vendor_status", String, nullable=True),
    # Вложенные коллекции хранятся JSON-документами
    Column("line_items", JSON, nullable=False, default=list),
    Column("attachments", JSON, nullable=False, default=list),
    Column("notes", JSON, nullable=False, default=list),
    Column("associated_users", JSON, nullable=False, default=list),
    Column("source_order_id", String, unique=True, index=True, nullable=True),
    Column("source_order_number", String, nullable=True),
    Column("source_order_url", String, nullable=True),
    Column("customer_email", String, nullable=True),
    Column("customer_phone", String, nullable=True),
    Column("shipping_address", String, nullable=True),
    Column("financial_status", String, nullable=True),
    Column("text_under_design", String, nullable=True),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


order_sequences_tbl = Table(
    "order_sequences",
    metadata,
    Column("name", String, primary_key=True),
    Column("value", Integer, nullable=False, default=0)
)

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    event,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


metadata = MetaData()

# Catalogue - produkty i ich warianty (rozmiar/kolor/cena/stan magazynowy)
products = Table(
    "products",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("name", String(255), nullable=False, index=True),
    Column("description", Text, nullable=False, default=""),
    Column("category", String(100), nullable=False, index=True),
    Column("image_urls", JSON, nullable=False, default=list),
    Column("is_featured", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

# Stock Ledger - jedyne autorytatywne źródło stanu magazynowego
product_variants = Table(
    "product_variants",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("size", String(50), nullable=False),
    Column("color", String(50), nullable=False),
    Column("price", Float, nullable=False),
    Column("stock", Integer, nullable=False, default=0),
    CheckConstraint("stock >= 0", name="ck_variant_stock_non_negative"),
    CheckConstraint("price >= 0", name="ck_variant_price_non_negative"),
)

carts = Table(
    "carts",
    metadata,
    Column("user_id", String(255), primary_key=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

# Pozycje koszyka ze snapshotem ceny/nazwy/zdjęcia z chwili dodania
cart_items = Table(
    "cart_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(255), ForeignKey("carts.user_id", ondelete="CASCADE"), nullable=False),
    Column("product_id", Uuid, nullable=False),
    Column("variant_id", Uuid, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price_at_time", Float, nullable=False),
    Column("name_at_time", String(255), nullable=False),
    Column("image_at_time", String(1000), nullable=False, default=""),
    Column("size_at_time", String(50), nullable=False),
    Column("color_at_time", String(50), nullable=False),
    Column("added_at", DateTime(timezone=True), nullable=False, default=utcnow),
    CheckConstraint("quantity >= 1", name="ck_cart_item_quantity_positive"),
    Index("idx_cart_items_user", "user_id", "id"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("order_number", Integer, nullable=False, unique=True),
    Column("user_id", String(255), nullable=False, index=True),
    Column("items", JSON, nullable=False),
    Column("shipping_address", JSON, nullable=False),
    Column("payment_method", String(50), nullable=False),
    Column("total_amount", Float, nullable=False),
    Column("status", String(20), nullable=False, index=True),
    Column("idempotency_key", String(255), nullable=True),
    Column("cart_cleared", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    # Ten sam klucz idempotencji nie może utworzyć dwóch zamówień
    Index("idx_orders_user_idempotency", "user_id", "idempotency_key", unique=True),
    Index("idx_orders_cart_cleared", "cart_cleared"),
)

# Sequence Counter - jeden wiersz na nazwaną sekwencję
counters = Table(
    "counters",
    metadata,
    Column("name", String(100), primary_key=True),
    Column("value", Integer, nullable=False, default=0),
)


class Database:
    """Database connection manager"""

    def __init__(self, database_url: str, echo: bool = False):
        engine_options = {"echo": echo}
        if not database_url.startswith("sqlite"):
            engine_options.update(pool_size=20, max_overflow=0)

        self.engine = create_async_engine(database_url, **engine_options)
        if database_url.startswith("sqlite"):
            _serialize_sqlite_writers(self.engine)

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_tables(self) -> None:
        """Create all tables in database"""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables (for testing)"""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)

    async def get_session(self) -> AsyncSession:
        """Get database session"""
        async with self.session_factory() as session:
            yield session

    async def close(self) -> None:
        """Close database connection"""
        await self.engine.dispose()


def _serialize_sqlite_writers(engine) -> None:
    """
    SQLite: każda transakcja startuje jako BEGIN IMMEDIATE.

    Bez tego dwie transakcje czytające koszyk i potem aktualizujące stan
    magazynu kończą się "database is locked" zamiast czekać na siebie.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=10000")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

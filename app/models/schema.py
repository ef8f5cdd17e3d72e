from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from app.core.db import Base


class StockItem(Base):
    __tablename__ = "stock_items"

    id = Column(Integer, primary_key=True)
    record_title = Column(String(300), nullable=False, index=True)
    artist = Column(String(200), nullable=False, index=True)
    genre = Column(String(100), nullable=False, index=True)
    price = Column(String(20), nullable=False)
    quantity = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    address = Column(String(300), nullable=False)
    city = Column(String(100), nullable=False)
    county = Column(String(100), nullable=True)
    phone_number = Column(String(40), nullable=True)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    customer_name = Column(String(200), nullable=False)
    address = Column(String(300), nullable=True)
    city = Column(String(100), nullable=True)
    county = Column(String(100), nullable=True)
    phone_number = Column(String(40), nullable=False, index=True)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    stock_item_id = Column(Integer, ForeignKey("stock_items.id"), nullable=False)
    price = Column(String(20), nullable=False)
    ordered_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("idx_order_customer", "customer_id"),)

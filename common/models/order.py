from sqlalchemy import BigInteger, Boolean, Column, Integer, JSON, String, Text
from .base import Base


class OrderRow(Base):
    __tablename__ = "tshirt_order"

    id = Column(String(32), primary_key=True)
    seq = Column(Integer, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    sizes = Column(JSON, nullable=False)
    brand_request = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    total_items = Column(Integer, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(BigInteger, nullable=False, index=True)
    submitter_ref = Column(String(128), nullable=False)


SIZES = ("S", "M", "L", "XL", "XXL")

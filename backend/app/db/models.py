from sqlalchemy import JSON, Column, DateTime, Integer, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class VehicleRecord(Base):
    __tablename__ = "vehicles"
    # Autoincrement keeps deleted ids from being handed out again on SQLite
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True, autoincrement=True)
    attributes = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    modified_at = Column(DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP"))

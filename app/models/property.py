"""Properties and their rentable units."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=True)  # e.g. "Maple Court"
    street = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    zip_code = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    units = relationship("Unit", back_populates="property_ref")

    @property
    def address(self) -> str:
        parts = [self.street, self.city, self.state]
        if self.zip_code:
            parts.append(self.zip_code)
        return ", ".join([p for p in parts if p])


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unit_number = Column(String(50), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    property_ref = relationship("Property", back_populates="units")

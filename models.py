from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from database import Base

ROLE_SUPERADMIN = "superadmin"
ROLE_EMPLOYEE = "employee"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    fiscal_code = Column(String(16), nullable=False)
    birth_year = Column(Integer, nullable=False)
    monthly_salary = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    color = Column(String(7), default="#ffffff")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="employee", cascade="all, delete-orphan")
    user = relationship("User", back_populates="employee", uselist=False, cascade="all, delete-orphan")

    @property
    def username(self):
        return self.user.username if self.user else None


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_EMPLOYEE)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    employee = relationship("Employee", back_populates="user")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)  # Solo data, niente orario
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    client_name = Column(String(255), nullable=False, index=True)
    service_type = Column(String(100), nullable=False)
    payment_method = Column(String(20), nullable=False, default="da-pagare")
    product_sold = Column(String(255), nullable=True)

    # Tutte le occorrenze di una serie settimanale condividono lo stesso gruppo
    recurrence_group_id = Column(String(64), nullable=True, index=True)
    is_recurring = Column(Boolean, nullable=False, default=False)

    employee = relationship("Employee", back_populates="appointments")


# --- SPESE MENSILI (chiave YYYY-MM) ---

class UtilityExpense(Base):
    __tablename__ = "utility_expenses"

    id = Column(Integer, primary_key=True, index=True)
    month_key = Column(String(7), nullable=False, index=True)
    utility_type = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class BarExpense(Base):
    __tablename__ = "bar_expenses"

    id = Column(Integer, primary_key=True, index=True)
    month_key = Column(String(7), nullable=False, index=True)
    expense_type = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ProductExpense(Base):
    __tablename__ = "product_expenses"

    id = Column(Integer, primary_key=True, index=True)
    month_key = Column(String(7), nullable=False, index=True)
    product_type = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class MaintenanceExpense(Base):
    __tablename__ = "maintenance_expenses"

    id = Column(Integer, primary_key=True, index=True)
    month_key = Column(String(7), nullable=False, index=True)
    maintenance_type = Column(String(100), nullable=False)  # ordinaria / straordinaria / slug custom
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ExpenseNote(Base):
    __tablename__ = "expense_notes"
    __table_args__ = (UniqueConstraint("section", "month_key", "note_type"),)

    id = Column(Integer, primary_key=True, index=True)
    section = Column(String(20), nullable=False)
    month_key = Column(String(7), nullable=False)
    note_type = Column(String(100), nullable=False, default="")
    notes = Column(Text, default="")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CustomCategory(Base):
    __tablename__ = "custom_categories"
    __table_args__ = (UniqueConstraint("section", "month_key", "slug"),)

    id = Column(Integer, primary_key=True, index=True)
    section = Column(String(20), nullable=False)
    month_key = Column(String(7), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)

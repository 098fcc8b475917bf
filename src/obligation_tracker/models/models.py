"""
Модуль моделей данных для Obligation Tracker.

Содержит:
- SQLAlchemy модели хранилищ: категории, журнал операций, бюджеты,
  кредиты и уведомления о фиксированных расходах
- Pydantic модели для создания/обновления с валидацией
- Pydantic модели чтения (read models) для слоя представления
"""

from datetime import datetime
from datetime import date as date_type
from decimal import Decimal
from typing import List, Optional
import uuid

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Enum as SQLEnum, Boolean,
    ForeignKey, Index, UniqueConstraint, CheckConstraint, text
)
from sqlalchemy.orm import relationship, DeclarativeBase
from pydantic import BaseModel, field_validator, Field, ConfigDict, computed_field

from .enums import TransactionType, InterestRateBand
from obligation_tracker.utils.dates import next_payment_date


# Декларативная база для SQLAlchemy моделей
class Base(DeclarativeBase):
    """Базовый класс для всех SQLAlchemy моделей."""
    pass


class CategoryDB(Base):
    """
    Справочник категорий пользователя.

    Категория может быть помечена как фиксированный ежемесячный расход:
    тогда заполнены day_of_month и estimated_amount, и по ней работает
    планировщик напоминаний. Категория, созданная кредитом, принадлежит
    ему (связь loan) и редактируется только через сервис кредитов.

    Attributes:
        id: Уникальный идентификатор категории (UUID)
        user_id: Владелец категории
        name: Название категории
        icon: Иконка (эмодзи)
        type: Тип категории (доход или расход)
        is_fixed_expense: Признак фиксированного ежемесячного расхода
        day_of_month: День платежа (1-31), только для фиксированных расходов
        estimated_amount: Ожидаемая сумма, только для фиксированных расходов
        created_at: Дата создания категории
        updated_at: Дата последнего обновления
    """
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    icon = Column(String(10), nullable=False, default="📁")
    type = Column(SQLEnum(TransactionType), nullable=False, default=TransactionType.EXPENSE)
    is_fixed_expense = Column(Boolean, nullable=False, default=False)
    day_of_month = Column(Integer, nullable=True)
    estimated_amount = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    transactions = relationship("TransactionDB", back_populates="category")
    budgets = relationship("BudgetDB", back_populates="category")
    notifications = relationship("NotificationDB", back_populates="category")
    loan = relationship("LoanDB", back_populates="category", uselist=False)

    __table_args__ = (
        Index('ix_categories_user_id_fixed', 'user_id', 'is_fixed_expense'),
        CheckConstraint(
            'day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)',
            name='ck_categories_day_of_month'
        ),
    )

    @property
    def is_loan_owned(self) -> bool:
        """Категория создана кредитом и проецирует его поля."""
        return self.loan is not None


class TransactionDB(Base):
    """
    Запись журнала операций (доход или расход).

    Записи неизменяемы после создания, допускается только удаление.

    Attributes:
        id: Уникальный идентификатор записи (UUID)
        user_id: Владелец записи
        amount: Сумма (положительное число)
        type: Направление (доход или расход)
        category_id: Ссылка на категорию (UUID)
        description: Свободный комментарий
        transaction_date: Дата операции
        created_at: Дата создания записи
        updated_at: Дата последнего обновления
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(64), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    description = Column(String(500))
    transaction_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    category = relationship("CategoryDB", back_populates="transactions")

    # Индексы для быстрого поиска
    __table_args__ = (
        Index('ix_transactions_user_id_date_type', 'user_id', 'transaction_date', 'type'),
        Index('ix_transactions_category_id_date', 'category_id', 'transaction_date'),
        CheckConstraint('amount > 0', name='ck_transactions_amount_positive'),
    )

    @property
    def date(self) -> date_type:
        """Alias для transaction_date."""
        return self.transaction_date


class BudgetDB(Base):
    """
    Бюджет категории на месяц.

    Потраченная сумма не хранится: она каждый раз вычисляется
    по журналу операций (см. budget_service).

    Attributes:
        id: Уникальный идентификатор бюджета (UUID)
        user_id: Владелец бюджета
        name: Название бюджета
        assigned_amount: Выделенная сумма
        category_id: Ссылка на категорию (UUID)
        month: Месяц (1-12)
        year: Год
        is_active: Признак активности
        created_at: Дата создания
        updated_at: Дата последнего обновления
    """
    __tablename__ = "budgets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(64), nullable=False)
    name = Column(String(100), nullable=False)
    assigned_amount = Column(Numeric(10, 2), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    category = relationship("CategoryDB", back_populates="budgets")

    __table_args__ = (
        Index('ix_budgets_user_id_period', 'user_id', 'year', 'month'),
        # Не более одного активного бюджета на категорию в периоде
        Index(
            'uq_budgets_active_category_period',
            'user_id', 'category_id', 'month', 'year',
            unique=True,
            sqlite_where=text('is_active'),
            postgresql_where=text('is_active'),
        ),
        CheckConstraint('month >= 1 AND month <= 12', name='ck_budgets_month'),
    )


class LoanDB(Base):
    """
    Кредит с фиксированным ежемесячным платежом.

    Кредит владеет своей категорией (category_id уникален): название, иконка,
    день платежа и сумма взноса проецируются на категорию при каждом
    изменении кредита.

    Attributes:
        id: Уникальный идентификатор (UUID)
        user_id: Владелец кредита
        name: Название кредита (уникально для пользователя)
        description: Описание (опционально)
        principal_amount: Фактически полученная сумма
        installment_amount: Сумма ежемесячного взноса
        installments_count: Количество взносов
        due_day: День месяца для платежа (1-31)
        start_date: Дата начала
        icon: Иконка (эмодзи)
        is_active: Признак активности
        installments_paid: Количество оплаченных взносов
        category_id: Категория кредита (UUID)
        created_at: Дата создания записи
        updated_at: Дата последнего обновления

    Properties (вычисляемые поля):
        total_to_pay: installment_amount * installments_count
        total_interest: total_to_pay - principal_amount
        approximate_interest_rate: Приблизительная годовая ставка, %
        remaining_installments, total_paid, progress_percentage,
        is_completed, interest_rate_band, next_payment_date
    """
    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(64), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    principal_amount = Column(Numeric(10, 2), nullable=False)
    installment_amount = Column(Numeric(10, 2), nullable=False)
    installments_count = Column(Integer, nullable=False)
    due_day = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False, default=date_type.today)
    icon = Column(String(10), nullable=False, default="🏦")
    is_active = Column(Boolean, nullable=False, default=True)
    installments_paid = Column(Integer, nullable=False, default=0)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    category = relationship("CategoryDB", back_populates="loan")

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_loans_user_id_name'),
        Index('ix_loans_user_id_active', 'user_id', 'is_active'),
        CheckConstraint(
            'installments_paid >= 0 AND installments_paid <= installments_count',
            name='ck_loans_installments_paid_range'
        ),
        CheckConstraint('due_day >= 1 AND due_day <= 31', name='ck_loans_due_day'),
    )

    @property
    def total_to_pay(self) -> Decimal:
        return self.installment_amount * self.installments_count

    @property
    def total_interest(self) -> Decimal:
        return self.total_to_pay - self.principal_amount

    @property
    def approximate_interest_rate(self) -> Decimal:
        """
        Приблизительная простая годовая ставка, %.

        ((взнос * количество - сумма) / сумма) * (12 / количество) * 100,
        округлённая до 2 знаков. Для некорректных данных возвращает 0.

        Example:
            >>> loan.principal_amount = Decimal('10000')
            >>> loan.installment_amount = Decimal('1000')
            >>> loan.installments_count = 12
            >>> loan.approximate_interest_rate
            Decimal('20.00')
        """
        if self.principal_amount <= 0 or self.installments_count <= 0:
            return Decimal('0')
        rate = (
            (self.total_interest / self.principal_amount)
            * (Decimal('12') / Decimal(self.installments_count))
            * Decimal('100')
        )
        return round(rate, 2)

    @property
    def interest_rate_band(self) -> InterestRateBand:
        rate = self.approximate_interest_rate
        if rate <= Decimal('15'):
            return InterestRateBand.FAVORABLE
        if rate <= Decimal('30'):
            return InterestRateBand.MODERATE
        return InterestRateBand.HIGH

    @property
    def remaining_installments(self) -> int:
        return max(self.installments_count - self.installments_paid, 0)

    @property
    def total_paid(self) -> Decimal:
        return self.installment_amount * self.installments_paid

    @property
    def total_remaining(self) -> Decimal:
        return self.total_to_pay - self.total_paid

    @property
    def progress_percentage(self) -> Decimal:
        if self.installments_count <= 0:
            return Decimal('0')
        percentage = Decimal(self.installments_paid) / Decimal(self.installments_count) * Decimal('100')
        return min(round(percentage, 2), Decimal('100'))

    @property
    def is_completed(self) -> bool:
        return self.installments_paid >= self.installments_count

    def get_next_payment_date(self, today: Optional[date_type] = None) -> Optional[date_type]:
        """
        Дата следующего платежа.

        Returns:
            Дата платежа (день ограничен длиной месяца, при прошедшей дате
            переносится на следующий месяц) или None для неактивного
            либо полностью погашенного кредита
        """
        if not self.is_active or self.is_completed:
            return None
        return next_payment_date(self.due_day, today)

    @property
    def next_payment_date(self) -> Optional[date_type]:
        return self.get_next_payment_date()


class NotificationDB(Base):
    """
    Напоминание о платеже по фиксированному расходу.

    Для каждой категории и пользователя существует не более одного
    напоминания на расчётный месяц (due_month, due_year) - это
    гарантируется уникальным ограничением uq_notifications_cycle.

    Attributes:
        id: Уникальный идентификатор (UUID)
        category_id: Категория фиксированного расхода (UUID)
        user_id: Владелец
        notification_date: Дата формирования напоминания
        due_date: Дата платежа
        due_month: Месяц платежа (ключ цикла)
        due_year: Год платежа (ключ цикла)
        is_read: Признак прочтения
        created_at: Время создания записи
    """
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    user_id = Column(String(64), nullable=False)
    notification_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    due_month = Column(Integer, nullable=False)
    due_year = Column(Integer, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now, index=True)

    # Связи
    category = relationship("CategoryDB", back_populates="notifications")

    __table_args__ = (
        UniqueConstraint(
            'category_id', 'user_id', 'due_month', 'due_year',
            name='uq_notifications_cycle'
        ),
        Index('ix_notifications_user_id_read', 'user_id', 'is_read'),
    )


# =============================================================================
# Pydantic модели: категории
# =============================================================================

class Category(BaseModel):
    """
    Pydantic модель для чтения категории из БД.
    """
    id: str
    user_id: str
    name: str
    icon: str
    type: TransactionType
    is_fixed_expense: bool
    day_of_month: Optional[int] = None
    estimated_amount: Optional[Decimal] = None
    is_loan_owned: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    """
    Pydantic модель для создания категории с валидацией.

    Для фиксированного расхода обязательны day_of_month и estimated_amount;
    для обычной категории они должны отсутствовать (проверяется в сервисе).

    Attributes:
        name: Название категории (не может быть пустым)
        icon: Иконка
        type: Тип категории (доход или расход)
        is_fixed_expense: Признак фиксированного расхода
        day_of_month: День платежа (1-31)
        estimated_amount: Ожидаемая сумма платежа (> 0)
    """
    name: str = Field(max_length=100, description="Название категории")
    icon: str = Field(default="📁", max_length=10)
    type: TransactionType = TransactionType.EXPENSE
    is_fixed_expense: bool = False
    day_of_month: Optional[int] = Field(None, ge=1, le=31, description="День платежа")
    estimated_amount: Optional[Decimal] = Field(None, gt=Decimal('0'), description="Ожидаемая сумма")

    @field_validator('name')
    @classmethod
    def name_not_empty_and_trim(cls, v: str) -> str:
        """
        Проверяет, что название не пустое, и обрезает пробелы по краям.

        Example:
            >>> CategoryCreate(name="  Аренда  ").name
            'Аренда'
        """
        if not v or not v.strip():
            raise ValueError('Название категории не может быть пустым или состоять только из пробелов')
        return v.strip()


class CategoryUpdate(BaseModel):
    """
    Pydantic модель для обновления категории.

    Все поля опциональные - обновляются только указанные. Для отключения
    напоминания передайте is_fixed_expense=False: день и сумма будут сброшены.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    icon: Optional[str] = Field(None, max_length=10)
    is_fixed_expense: Optional[bool] = None
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    estimated_amount: Optional[Decimal] = Field(None, gt=Decimal('0'))


# =============================================================================
# Pydantic модели: журнал операций
# =============================================================================

class TransactionCreate(BaseModel):
    """
    Pydantic модель для создания записи журнала.

    Attributes:
        amount: Сумма (должна быть больше 0)
        type: Направление (доход или расход)
        category_id: ID категории (UUID)
        description: Необязательный комментарий
        transaction_date: Дата операции (по умолчанию текущая дата)
    """
    amount: Decimal = Field(gt=Decimal('0'), description="Сумма должна быть положительной")
    type: TransactionType
    category_id: str
    description: Optional[str] = Field(None, max_length=500)
    transaction_date: date_type = Field(default_factory=date_type.today)

    @field_validator('category_id')
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Валидация формата UUID."""
        try:
            uuid.UUID(v)
            return v
        except ValueError:
            raise ValueError(f'Невалидный UUID: {v}')


class Transaction(TransactionCreate):
    """
    Pydantic модель для чтения записи журнала из БД.
    """
    id: str
    user_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Pydantic модели: бюджеты
# =============================================================================

class BudgetCreate(BaseModel):
    """
    Pydantic модель для создания бюджета.

    Attributes:
        name: Название бюджета
        assigned_amount: Выделенная сумма (>= 0)
        category_id: ID категории (UUID)
        month: Месяц (1-12)
        year: Год
    """
    name: str = Field(min_length=1, max_length=100)
    assigned_amount: Decimal = Field(ge=Decimal('0'), description="Выделенная сумма")
    category_id: str
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900, le=9999)

    @field_validator('category_id')
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Валидация формата UUID."""
        try:
            uuid.UUID(v)
            return v
        except ValueError:
            raise ValueError(f'Невалидный UUID: {v}')


class BudgetUpdate(BaseModel):
    """
    Pydantic модель для обновления бюджета.

    Все поля опциональные - обновляются только указанные.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    assigned_amount: Optional[Decimal] = Field(None, ge=Decimal('0'))
    category_id: Optional[str] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=1900, le=9999)
    is_active: Optional[bool] = None


class BudgetView(BaseModel):
    """
    Бюджет периода с фактическими расходами.

    Все производные поля вычисляются из spent_amount в момент построения
    (см. from_budget), в БД ничего из этого не хранится.
    """
    id: str
    user_id: str
    name: str
    category_id: str
    category_name: Optional[str] = None
    category_icon: Optional[str] = None
    month: int
    year: int
    is_active: bool
    assigned_amount: Decimal
    spent_amount: Decimal
    available_amount: Decimal
    used_percentage: Decimal
    is_over_budget: bool
    is_near_limit: bool

    @classmethod
    def from_budget(
        cls,
        budget: BudgetDB,
        spent_amount: Decimal,
        near_limit_percent: Decimal = Decimal('80')
    ) -> "BudgetView":
        """
        Строит представление бюджета по сумме расходов.

        Args:
            budget: Бюджет из БД
            spent_amount: Сумма расходов категории за период
            near_limit_percent: Порог "близко к лимиту", %

        Returns:
            BudgetView с вычисленными available/used/over/near полями
        """
        assigned = budget.assigned_amount
        if assigned > 0:
            exact_percentage = spent_amount / assigned * Decimal('100')
        else:
            exact_percentage = Decimal('0')
        used_percentage = round(exact_percentage, 2)

        return cls(
            id=budget.id,
            user_id=budget.user_id,
            name=budget.name,
            category_id=budget.category_id,
            category_name=budget.category.name if budget.category else None,
            category_icon=budget.category.icon if budget.category else None,
            month=budget.month,
            year=budget.year,
            is_active=budget.is_active,
            assigned_amount=assigned,
            spent_amount=spent_amount,
            available_amount=max(assigned - spent_amount, Decimal('0')),
            used_percentage=used_percentage,
            is_over_budget=spent_amount > assigned,
            is_near_limit=near_limit_percent <= exact_percentage < Decimal('100'),
        )


# =============================================================================
# Pydantic модели: кредиты
# =============================================================================

class Loan(BaseModel):
    """
    Pydantic модель для чтения кредита из БД.

    Вычисляемые поля берутся из свойств LoanDB (from_attributes).
    """
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    principal_amount: Decimal
    installment_amount: Decimal
    installments_count: int
    due_day: int
    start_date: date_type
    icon: str
    is_active: bool
    installments_paid: int
    category_id: str
    remaining_installments: int
    total_to_pay: Decimal
    total_paid: Decimal
    total_interest: Decimal
    approximate_interest_rate: Decimal
    interest_rate_band: InterestRateBand
    progress_percentage: Decimal
    is_completed: bool
    next_payment_date: Optional[date_type] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoanUpdate(BaseModel):
    """
    Pydantic модель для обновления кредита.

    Все поля опциональные - обновляются только указанные.
    reminder_enabled включает/выключает напоминания по категории кредита.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    principal_amount: Optional[Decimal] = Field(None, gt=Decimal('0'))
    installment_amount: Optional[Decimal] = Field(None, gt=Decimal('0'))
    installments_count: Optional[int] = Field(None, ge=1, le=1000)
    due_day: Optional[int] = Field(None, ge=1, le=31)
    start_date: Optional[date_type] = None
    icon: Optional[str] = Field(None, max_length=10)
    reminder_enabled: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, v: Optional[str]) -> Optional[str]:
        """Проверка, что название не пустое."""
        if v is not None:
            if not v.strip():
                raise ValueError('Название не может быть пустым')
            return v.strip()
        return v


class LoanSummary(BaseModel):
    """
    Сводка по активным кредитам пользователя для дашборда.
    """
    active_loans_count: int
    total_borrowed: Decimal
    total_to_pay: Decimal
    total_paid: Decimal
    total_remaining: Decimal
    monthly_payments_total: Decimal
    average_interest_rate: Decimal


# =============================================================================
# Pydantic модели: уведомления и дашборд
# =============================================================================

class Notification(BaseModel):
    """
    Pydantic модель для чтения напоминания.
    """
    id: str
    category_id: str
    user_id: str
    notification_date: date_type
    due_date: date_type
    is_read: bool
    created_at: datetime
    category: Optional[Category] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def days_until_due(self) -> int:
        """Количество дней до платежа (отрицательное - просрочка)."""
        return (self.due_date - date_type.today()).days

    @computed_field
    @property
    def is_overdue(self) -> bool:
        return date_type.today() > self.due_date

    @computed_field
    @property
    def status_text(self) -> str:
        if self.is_overdue:
            return "ПРОСРОЧЕНО"
        if self.days_until_due == 0:
            return "Срок сегодня"
        if self.days_until_due == 1:
            return "Срок завтра"
        return f"Срок через {self.days_until_due} дн."


class DashboardSummary(BaseModel):
    """
    Сводные данные по обязательствам пользователя за месяц.
    """
    user_id: str
    month: int
    year: int
    upcoming_payments: List[Loan]
    exceeded_budgets: List[BudgetView]
    unread_count: int
    unread_notifications: List[Notification]
    loan_summary: LoanSummary
    total_budget: Decimal
    total_spent: Decimal

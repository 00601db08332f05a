# forecast_app/core/schemas.py
import datetime as dt
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================
# Company size
# ============================================

class CompanySize(str, Enum):
    LARGE = "large"
    MID = "mid"
    SMALL = "small"

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["CompanySize"]:
        """
        Map a stored company-size label onto the enum.
        The customers table stores Korean labels (대기업 / 중견기업 / 중소기업);
        English enum values are accepted as well. Anything else maps to None.
        """
        if label is None:
            return None
        label = label.strip()
        if label in _SIZE_LABELS:
            return _SIZE_LABELS[label]
        try:
            return cls(label.lower())
        except ValueError:
            return None

    @property
    def label(self) -> str:
        return _SIZE_DISPLAY[self]


_SIZE_LABELS = {
    "대기업": CompanySize.LARGE,
    "중견기업": CompanySize.MID,
    "중소기업": CompanySize.SMALL,
}

_SIZE_DISPLAY = {
    CompanySize.LARGE: "Large enterprises",
    CompanySize.MID: "Mid-sized enterprises",
    CompanySize.SMALL: "Small businesses",
}


# ============================================
# Read model
# ============================================

class ForecastRecord(CamelModel):
    """One predicted-quantity estimate, flattened with its customer's profile."""

    cof_id: int
    customer_id: int
    company_name: Optional[str] = None
    customer_name: Optional[str] = None
    company_size: Optional[CompanySize] = None
    predicted_date: dt.date
    predicted_quantity: float
    mape: Optional[float] = None
    prediction_model: Optional[str] = None
    probability: Optional[float] = None
    forecast_generation_date: Optional[dt.datetime] = None


class DailyActualSales(CamelModel):
    date: dt.date
    quantity: float


class CustomerForecastBundle(CamelModel):
    customer_id: int
    company_name: Optional[str] = None
    customer_name: Optional[str] = None
    company_size: Optional[CompanySize] = None
    forecasts: List[ForecastRecord] = Field(default_factory=list)
    actual_sales: List[DailyActualSales] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.company_name or f"Customer {self.customer_id}"


# ============================================
# Mutations
# ============================================

class ForecastCreate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    customer_id: int
    predicted_date: dt.date
    predicted_quantity: float = Field(ge=0)
    mape: Optional[float] = Field(default=None, ge=0)
    prediction_model: str = Field(min_length=1)
    probability: Optional[float] = Field(default=None, ge=0, le=1)


class ForecastUpdate(CamelModel):
    """Partial update; only the fields present in the payload are written."""

    model_config = ConfigDict(extra="forbid")

    predicted_date: Optional[dt.date] = None
    predicted_quantity: Optional[float] = Field(default=None, ge=0)
    mape: Optional[float] = Field(default=None, ge=0)
    probability: Optional[float] = Field(default=None, ge=0, le=1)
    prediction_model: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _required_fields_not_null(self):
        # mape and probability are nullable columns; the rest are not
        for name in ("predicted_date", "predicted_quantity", "prediction_model"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def changes(self) -> Dict[str, object]:
        return self.model_dump(exclude_unset=True)


class TriggerRequest(BaseModel):
    timestamp: dt.datetime


# ============================================
# Dashboard views
# ============================================

class ChartPoint(CamelModel):
    date: dt.date
    predicted_quantity: float = 0.0
    actual_sales_monthly: float = 0.0


class ChartStats(CamelModel):
    avg_predicted: int = 0
    avg_actual: int = 0
    mape: float = 0.0
    trend: float = 0.0


class ChartResponse(CamelModel):
    label: str
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    series: List[ChartPoint] = Field(default_factory=list)
    stats: ChartStats = Field(default_factory=ChartStats)


class CompanyOption(CamelModel):
    customer_id: int
    company_name: Optional[str] = None
    company_size: Optional[CompanySize] = None


class CompanyDirectory(CamelModel):
    companies: List[CompanyOption] = Field(default_factory=list)
    size_counts: Dict[str, int] = Field(default_factory=dict)

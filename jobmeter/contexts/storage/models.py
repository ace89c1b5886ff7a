"""Plain records exchanged with the storage context."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class NaturalKey:
    """
    Dimensions that identify one measurement series.

    Enum-valued dimensions are stored by name (e.g. "TOTAL", "SENIOR").
    """

    category: str
    metric_type: str
    city: Optional[str] = None
    experience_level: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None


@dataclass(frozen=True)
class JobCountRecord:
    category: str
    metric_type: str
    location: str
    count: int
    fetched_at: datetime
    record_date: date
    city: Optional[str] = None
    experience_level: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    id: Optional[int] = None

    @property
    def key(self) -> NaturalKey:
        return NaturalKey(
            category=self.category,
            metric_type=self.metric_type,
            city=self.city,
            experience_level=self.experience_level,
            salary_min=self.salary_min,
            salary_max=self.salary_max,
        )


@dataclass(frozen=True)
class TrackedCategory:
    slug: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class TrackedCity:
    slug: str
    name: str
    active: bool = False

"""
Filter vocabulary for job count measurements.

Metric types, experience levels and salary ranges are plain tags. The data each
tag carries (URL location, query flags, salary bounds) lives in lookup tables,
and the free functions below turn a tag plus parameters into paths, query
strings and cache keys.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from jobmeter.contexts.storage import NaturalKey

MAX_SALARY = 500000
ALL_LOCATIONS = "all-locations"


class MetricType(str, Enum):
    TOTAL = "TOTAL"
    WITH_SALARY = "WITH_SALARY"
    REMOTE = "REMOTE"
    REMOTE_WITH_SALARY = "REMOTE_WITH_SALARY"


class ExperienceLevel(str, Enum):
    JUNIOR = "JUNIOR"
    MID = "MID"
    SENIOR = "SENIOR"


class SalaryRange(str, Enum):
    UNDER_25K = "UNDER_25K"
    RANGE_25_30K = "RANGE_25_30K"
    OVER_30K = "OVER_30K"


@dataclass(frozen=True)
class MetricTraits:
    location: str
    with_salary: Optional[str]
    remote: bool
    display_name: str


@dataclass(frozen=True)
class ExperienceTraits:
    slug: str
    display_name: str


@dataclass(frozen=True)
class SalaryTraits:
    minimum: Optional[int]
    maximum: Optional[int]
    display_name: str
    requires_subtraction: bool


METRIC_TRAITS: Dict[MetricType, MetricTraits] = {
    MetricType.TOTAL: MetricTraits(ALL_LOCATIONS, None, False, "Total Offers"),
    MetricType.WITH_SALARY: MetricTraits(ALL_LOCATIONS, "yes", False, "With Salary"),
    MetricType.REMOTE: MetricTraits("remote", None, True, "Remote"),
    MetricType.REMOTE_WITH_SALARY: MetricTraits("remote", "yes", True, "Remote + Salary"),
}

EXPERIENCE_TRAITS: Dict[ExperienceLevel, ExperienceTraits] = {
    ExperienceLevel.JUNIOR: ExperienceTraits("junior", "Junior"),
    ExperienceLevel.MID: ExperienceTraits("mid", "Mid"),
    ExperienceLevel.SENIOR: ExperienceTraits("senior", "Senior"),
}

SALARY_TRAITS: Dict[SalaryRange, SalaryTraits] = {
    SalaryRange.UNDER_25K: SalaryTraits(None, 25000, "< 25k", True),
    SalaryRange.RANGE_25_30K: SalaryTraits(25000, 30000, "25-30k", False),
    SalaryRange.OVER_30K: SalaryTraits(30000, None, "> 30k", False),
}


@dataclass(frozen=True)
class SalaryBound:
    """Salary filter sent to the job board: offers paying within [minimum, maximum]."""

    minimum: int
    maximum: int = MAX_SALARY

    @property
    def query(self) -> str:
        return f"salary={self.minimum},{self.maximum}"


# The three base values every salary bucket is derived from (None = no salary filter)
SALARY_25K_PLUS = SalaryBound(25000)
SALARY_30K_PLUS = SalaryBound(30000)
BASE_SALARY_BOUNDS: List[Optional[SalaryBound]] = [None, SALARY_25K_PLUS, SALARY_30K_PLUS]


@dataclass(frozen=True)
class FilterGroup:
    """Everything about a measurement except the salary bucket."""

    category_slug: str
    metric_type: MetricType
    city: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None

    def with_salary(self, salary_range: Optional[SalaryRange]) -> "FilterIdentity":
        return FilterIdentity(
            category_slug=self.category_slug,
            metric_type=self.metric_type,
            city=self.city,
            experience_level=self.experience_level,
            salary_range=salary_range,
        )

    def __str__(self) -> str:
        return (
            f"{self.category_slug}[{self.metric_type.value}] city={self.city} "
            f"exp={self.experience_level.value if self.experience_level else None}"
        )


@dataclass(frozen=True)
class FilterIdentity:
    """Uniquely identifies one measurement series."""

    category_slug: str
    metric_type: MetricType
    city: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None
    salary_range: Optional[SalaryRange] = None

    @property
    def group(self) -> FilterGroup:
        return FilterGroup(self.category_slug, self.metric_type, self.city, self.experience_level)

    @property
    def salary_min(self) -> Optional[int]:
        return SALARY_TRAITS[self.salary_range].minimum if self.salary_range else None

    @property
    def salary_max(self) -> Optional[int]:
        return SALARY_TRAITS[self.salary_range].maximum if self.salary_range else None

    @property
    def location(self) -> str:
        return self.city if self.city is not None else METRIC_TRAITS[self.metric_type].location

    def natural_key(self) -> NaturalKey:
        return NaturalKey(
            category=self.category_slug,
            metric_type=self.metric_type.value,
            city=self.city,
            experience_level=self.experience_level.value if self.experience_level else None,
            salary_min=self.salary_min,
            salary_max=self.salary_max,
        )

    def __str__(self) -> str:
        return (
            f"{self.category_slug}[{self.metric_type.value}] city={self.city} "
            f"exp={self.experience_level.value if self.experience_level else None} "
            f"salary={self.salary_range.value if self.salary_range else None}"
        )


def cache_key(group: FilterGroup, salary_bound: Optional[SalaryBound] = None) -> str:
    """
    Build the session cache key for one base value.

    Format: ``category|METRIC|city-or-ALL|LEVEL-or-ALL|salary-query-or-ANY``
    """
    return "|".join(
        [
            group.category_slug,
            group.metric_type.value,
            group.city if group.city is not None else "ALL",
            group.experience_level.value if group.experience_level else "ALL",
            salary_bound.query if salary_bound is not None else "ANY",
        ]
    )


def direct_salary_bound(salary_range: SalaryRange) -> Optional[SalaryBound]:
    """
    Salary filter that fetches a bucket in a single request.

    Returns None for buckets that can only be obtained by subtraction.
    """
    traits = SALARY_TRAITS[salary_range]
    if traits.requires_subtraction:
        return None
    return SalaryBound(traits.minimum or 0, traits.maximum or MAX_SALARY)


def subtraction_salary_bound(salary_range: SalaryRange) -> SalaryBound:
    """Salary filter for the 'above bucket' count subtracted from the total."""
    traits = SALARY_TRAITS[salary_range]
    if not traits.requires_subtraction:
        return direct_salary_bound(salary_range)
    return SalaryBound(traits.maximum)


def build_url_path(category_slug: str, metric_type: MetricType, city: Optional[str] = None) -> str:
    location = city if city is not None else METRIC_TRAITS[metric_type].location
    return f"/{location}/{category_slug}"


def build_query_params(
    metric_type: MetricType,
    city: Optional[str] = None,
    experience_level: Optional[ExperienceLevel] = None,
    salary_bound: Optional[SalaryBound] = None,
) -> List[str]:
    traits = METRIC_TRAITS[metric_type]
    params = []

    if traits.with_salary is not None:
        params.append(f"with-salary={traits.with_salary}")

    # A city path replaces the "remote" location, so remote-ness moves to the query
    if city is not None and traits.remote:
        params.append("workplace=remote")

    if experience_level is not None:
        params.append(f"experience-level={EXPERIENCE_TRAITS[experience_level].slug}")

    if salary_bound is not None:
        params.append(salary_bound.query)

    return params


def build_full_path(
    category_slug: str,
    metric_type: MetricType,
    city: Optional[str] = None,
    experience_level: Optional[ExperienceLevel] = None,
    salary_bound: Optional[SalaryBound] = None,
) -> str:
    """
    Build the listing path (relative to the board's base URL) for a filter combination.

    Example:
        >>> build_full_path("java", MetricType.REMOTE, "wroclaw", ExperienceLevel.MID, SALARY_25K_PLUS)
        '/wroclaw/java?workplace=remote&experience-level=mid&salary=25000,500000'
    """
    path = build_url_path(category_slug, metric_type, city)
    params = build_query_params(metric_type, city, experience_level, salary_bound)
    if not params:
        return path
    return path + "?" + "&".join(params)


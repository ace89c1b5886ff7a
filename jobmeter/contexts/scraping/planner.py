"""
Filter space planning.

Enumerates every combination to measure, outer to inner:
category -> metric type -> city (None = all locations, then active cities)
-> experience level (None = all levels) -> salary range (None = any salary).
"""

from typing import Iterator, List, Optional, Sequence

from jobmeter.contexts.scraping.filters import (
    ExperienceLevel,
    FilterGroup,
    FilterIdentity,
    MetricType,
    SalaryRange,
)
from jobmeter.contexts.storage import TrackedCategory, TrackedCity

EXPERIENCE_OPTIONS: List[Optional[ExperienceLevel]] = [None, *ExperienceLevel]
SALARY_OPTIONS: List[Optional[SalaryRange]] = [None, *SalaryRange]


def city_options(cities: Sequence[TrackedCity]) -> List[Optional[str]]:
    return [None] + [city.slug for city in cities]


def plan_groups(categories: Sequence[TrackedCategory], cities: Sequence[TrackedCity]) -> Iterator[FilterGroup]:
    """Yield one FilterGroup per (category, metric, city, experience) in planning order."""
    for category in categories:
        for metric_type in MetricType:
            for city in city_options(cities):
                for experience_level in EXPERIENCE_OPTIONS:
                    yield FilterGroup(category.slug, metric_type, city, experience_level)


def plan_filter_space(categories: Sequence[TrackedCategory], cities: Sequence[TrackedCity]) -> List[FilterIdentity]:
    """Every FilterIdentity to measure, in planning order."""
    return [
        group.with_salary(salary_range)
        for group in plan_groups(categories, cities)
        for salary_range in SALARY_OPTIONS
    ]


def count_combinations(n_categories: int, n_cities: int) -> int:
    return n_categories * len(MetricType) * (n_cities + 1) * len(EXPERIENCE_OPTIONS) * len(SALARY_OPTIONS)

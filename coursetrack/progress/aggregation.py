"""Weighted course progress aggregation.

Pure functions: given an enrollment's component progress and the course
structure, compute the overall percentage, the completion flag and the
per-section summaries. Nothing here touches the database.

Weights:
- Modules: completed / total course modules
- Assignments: submitted with a passing score / total assignments
- Project: submitted with a passing score (only if the course has one)

A category with nothing in it contributes nothing to the percentage but
still counts as satisfied for completion, so a course with no components
reports 0% and completed at the same time.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

from coursetrack.config.settings import Settings
from coursetrack.courses.models import Course

from .models import Enrollment, SectionProgress


@dataclass(frozen=True)
class ProgressWeights:
    modules: float = 0.40
    assignments: float = 0.30
    project: float = 0.30
    passing_score: int = 70

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProgressWeights":
        return cls(
            modules=settings.progress_weight_modules,
            assignments=settings.progress_weight_assignments,
            project=settings.progress_weight_project,
            passing_score=settings.progress_passing_score,
        )


DEFAULT_WEIGHTS = ProgressWeights()


@dataclass
class ProgressResult:
    """Outcome of one aggregation run."""

    progress: int
    completed: bool
    modules_completed: int = 0
    modules_total: int = 0
    assignments_passed: int = 0
    assignments_total: int = 0
    project_passed: bool = False
    section_progress: list[SectionProgress] = field(default_factory=list)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def is_passing(submitted: bool, score: int | None, passing_score: int) -> bool:
    return bool(submitted) and score is not None and score >= passing_score


def calculate_section_progress(
    enrollment: Enrollment,
    course: Course,
    now: datetime,
) -> list[SectionProgress]:
    """Summarise module completion for every section of the course.

    ``completed_at`` is kept from the previous summary when the section was
    already complete, set to ``now`` when it just became complete and
    cleared otherwise.
    """
    completed_modules = {m.module_id for m in enrollment.module_progress if m.completed}
    previous = {s.section_id: s for s in enrollment.section_progress}

    summaries = []
    for section in course.sections:
        total = len(section.modules)
        done = len(section.module_ids & completed_modules)
        is_complete = done == total

        completed_at = None
        if is_complete:
            before = previous.get(section.section_id)
            completed_at = (before.completed_at if before else None) or now

        summaries.append(
            SectionProgress(
                section_id=section.section_id,
                completed=is_complete,
                completed_at=completed_at,
                modules_completed=done,
                total_modules=total,
            )
        )
    return summaries


def calculate_course_progress(
    enrollment: Enrollment,
    course: Course,
    weights: ProgressWeights = DEFAULT_WEIGHTS,
    now: datetime | None = None,
) -> ProgressResult:
    """Compute the weighted progress of an enrollment.

    Only modules and assignments that belong to the course are counted, so
    stale component rows can never push the percentage past 100.

    Args:
        enrollment: Enrollment with its component progress loaded
        course: Full course structure
        weights: Category weights and passing score
        now: Clock used for section completion timestamps

    Returns:
        ProgressResult with progress in [0, 100]
    """
    now = now or datetime.now(UTC)

    module_ids = course.module_ids
    modules_total = len(module_ids)
    modules_completed = len(
        {m.module_id for m in enrollment.module_progress if m.completed} & module_ids
    )

    assignment_ids = course.assignment_ids
    assignments_total = len(assignment_ids)
    assignments_passed = sum(
        1
        for a in enrollment.assignment_progress
        if a.assignment_id in assignment_ids
        and is_passing(a.submitted, a.score, weights.passing_score)
    )

    project = enrollment.project_progress
    project_passed = project is not None and is_passing(
        project.submitted, project.score, weights.passing_score
    )

    total = 0.0
    if modules_total > 0:
        total += (modules_completed / modules_total) * weights.modules
    if assignments_total > 0:
        total += (assignments_passed / assignments_total) * weights.assignments
    if course.has_project and project_passed:
        total += weights.project

    progress = max(0, min(100, round_half_up(total * 100)))

    completed = (
        modules_completed == modules_total
        and assignments_passed == assignments_total
        and (not course.has_project or project_passed)
    )

    return ProgressResult(
        progress=progress,
        completed=completed,
        modules_completed=modules_completed,
        modules_total=modules_total,
        assignments_passed=assignments_passed,
        assignments_total=assignments_total,
        project_passed=project_passed,
        section_progress=calculate_section_progress(enrollment, course, now),
    )

"""Course structure module.

Provides:
- Sections, modules (video/pdf/quiz), assignments and the optional project
- The course lookups used by progress aggregation
"""

from .models import (
    COURSES_TABLES_CQL,
    Assignment,
    Course,
    CourseModule,
    ModuleType,
    Project,
    QuizQuestion,
    Section,
    SubmissionType,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "Assignment",
    "Course",
    "CourseModule",
    "ModuleType",
    "Project",
    "QuizQuestion",
    "Section",
    "SubmissionType",
]

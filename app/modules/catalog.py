# FILE: app/modules/catalog.py
"""
Read-only catalog of scraped university data used by the bot modules.

Scrapers and persistent storage live elsewhere; modules only see the narrow
store protocols below. InMemoryCatalog implements all of them over plain
lists and can be seeded from a JSON file (CATALOG_PATH):

    {
      "courses":  [{"uid": "1131U0001", "title": "微積分", "teachers": ["王小明"], ...}],
      "students": [{"id": "412345678", "name": "王小明", "department": "資工系"}],
      "contacts": [{"name": "資訊工程學系", "extension": "1234", ...}],
      "programs": [{"name": "人工智慧學程", "courses": [{"uid": "1131U0001", "type": "必"}]}]
    }

Semesters are (ROC year, term) pairs. "Recent semesters" are the two most
recent pairs present in the data, or the academic calendar when the
catalog has no courses.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from app.bot.keywords import contains_all_chars
from app.ratelimit.daily import TAIPEI

logger = logging.getLogger(__name__)

Semesters = Tuple[List[int], List[int]]

UID_RE = re.compile(r"^(\d{2,3})([12])([UMNP]\d{4})$", re.IGNORECASE)

REQUIRED_COURSE = "必"
ELECTIVE_COURSE = "選"


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class Course:
    uid: str
    title: str
    year: int = 0
    term: int = 0
    teachers: List[str] = field(default_factory=list)
    times: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    detail_url: str = ""
    note: str = ""

    def __post_init__(self):
        self.uid = self.uid.strip().upper()
        if not self.year or not self.term:
            m = UID_RE.match(self.uid)
            if m:
                self.year = self.year or int(m.group(1))
                self.term = self.term or int(m.group(2))

    @property
    def no(self) -> str:
        m = UID_RE.match(self.uid)
        return m.group(3) if m else self.uid

    @property
    def semester(self) -> Tuple[int, int]:
        return self.year, self.term

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "title": self.title,
            "year": self.year,
            "term": self.term,
            "teachers": list(self.teachers),
            "times": list(self.times),
            "locations": list(self.locations),
            "detail_url": self.detail_url,
            "note": self.note,
        }


@dataclass
class Student:
    id: str
    name: str
    department: str = ""
    year: int = 0


@dataclass
class Contact:
    name: str
    organization: str = ""
    title: str = ""
    extension: str = ""
    phone: str = ""
    email: str = ""
    location: str = ""
    url: str = ""

    @property
    def searchable(self) -> str:
        return " ".join(p for p in (self.name, self.organization, self.title) if p)


@dataclass
class ProgramCourseRef:
    uid: str
    course_type: str = ELECTIVE_COURSE

    @property
    def required(self) -> bool:
        return self.course_type == REQUIRED_COURSE


@dataclass
class Program:
    name: str
    category: str = ""
    url: str = ""
    courses: List[ProgramCourseRef] = field(default_factory=list)


@dataclass
class ProgramSummary:
    """A program plus its course counts within a semester filter."""
    name: str
    category: str = ""
    url: str = ""
    required_count: int = 0
    elective_count: int = 0

    @property
    def total_courses(self) -> int:
        return self.required_count + self.elective_count


@dataclass
class ProgramCourse:
    course: Course
    course_type: str

    @property
    def required(self) -> bool:
        return self.course_type == REQUIRED_COURSE


# =============================================================================
# STORE PROTOCOLS
# =============================================================================

class SemesterLookup(Protocol):
    def recent_semesters(self) -> Semesters: ...


class CourseStore(Protocol):
    def search_courses(self, keyword: str, years: Optional[Sequence[int]] = None,
                       terms: Optional[Sequence[int]] = None) -> List[Course]: ...

    def get_course(self, uid: str) -> Optional[Course]: ...

    def list_courses(self, years: Optional[Sequence[int]] = None,
                     terms: Optional[Sequence[int]] = None) -> List[Course]: ...


class StudentStore(Protocol):
    def search_students(self, name: str) -> List[Student]: ...

    def get_student(self, student_id: str) -> Optional[Student]: ...


class ContactStore(Protocol):
    def search_contacts(self, query: str) -> List[Contact]: ...


class ProgramStore(Protocol):
    def all_programs(self, years: Optional[Sequence[int]] = None,
                     terms: Optional[Sequence[int]] = None) -> List[ProgramSummary]: ...

    def search_programs(self, term: str, years: Optional[Sequence[int]] = None,
                        terms: Optional[Sequence[int]] = None) -> List[ProgramSummary]: ...

    def program_courses(self, name: str, years: Optional[Sequence[int]] = None,
                        terms: Optional[Sequence[int]] = None) -> List[ProgramCourse]: ...

    def course_programs(self, uid: str) -> List[str]: ...


# =============================================================================
# ACADEMIC CALENDAR
# =============================================================================

def semesters_for_date(day: date) -> Semesters:
    """
    The current/most recent semester and the one before it.

    Feb-Aug: spring term of the academic year that started last September.
    Sep-Jan: fall term of the current academic year plus the prior spring.
    """
    roc_year = day.year - 1911
    if 2 <= day.month <= 8:
        year = roc_year - 1
        return [year, year], [2, 1]
    academic_year = roc_year if day.month >= 9 else roc_year - 1
    return [academic_year, academic_year - 1], [1, 2]


def today_taipei() -> date:
    return datetime.now(TAIPEI).date()


def _in_semesters(course: Course, years: Optional[Sequence[int]], terms: Optional[Sequence[int]]) -> bool:
    if not years or not terms:
        return True
    return any(course.year == y and course.term == t for y, t in zip(years, terms))


# =============================================================================
# IN-MEMORY CATALOG
# =============================================================================

class InMemoryCatalog:
    """All store protocols over in-memory lists."""

    def __init__(
        self,
        courses: Iterable[Course] = (),
        students: Iterable[Student] = (),
        contacts: Iterable[Contact] = (),
        programs: Iterable[Program] = (),
        today: Callable[[], date] = today_taipei,
    ):
        self._courses: Dict[str, Course] = {c.uid: c for c in courses}
        self._students: Dict[str, Student] = {s.id: s for s in students}
        self._contacts: List[Contact] = list(contacts)
        self._programs: Dict[str, Program] = {p.name: p for p in programs}
        self._today = today

    def __repr__(self) -> str:
        return (
            f"<InMemoryCatalog courses={len(self._courses)} students={len(self._students)} "
            f"contacts={len(self._contacts)} programs={len(self._programs)}>"
        )

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryCatalog":
        programs = []
        for raw in data.get("programs", []):
            refs = [
                ProgramCourseRef(uid=str(c["uid"]).upper(), course_type=c.get("type", ELECTIVE_COURSE))
                for c in raw.get("courses", [])
            ]
            programs.append(Program(
                name=raw["name"],
                category=raw.get("category", ""),
                url=raw.get("url", ""),
                courses=refs,
            ))
        return cls(
            courses=[Course(**c) for c in data.get("courses", [])],
            students=[Student(**s) for s in data.get("students", [])],
            contacts=[Contact(**c) for c in data.get("contacts", [])],
            programs=programs,
        )

    @classmethod
    def from_file(cls, path: str) -> "InMemoryCatalog":
        """Load a JSON seed; a missing file yields an empty catalog."""
        p = Path(path)
        if not p.exists():
            logger.info(f"[catalog] {path} not found, starting with an empty catalog")
            return cls()
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
        catalog = cls.from_dict(data)
        logger.info(f"[catalog] loaded {catalog!r} from {path}")
        return catalog

    # =========================================================================
    # SEMESTERS
    # =========================================================================

    def recent_semesters(self) -> Semesters:
        pairs = sorted({c.semester for c in self._courses.values() if c.year and c.term}, reverse=True)
        if not pairs:
            return semesters_for_date(self._today())
        recent = pairs[:2]
        return [y for y, _ in recent], [t for _, t in recent]

    # =========================================================================
    # COURSES
    # =========================================================================

    def search_courses(self, keyword: str, years: Optional[Sequence[int]] = None,
                       terms: Optional[Sequence[int]] = None) -> List[Course]:
        needle = keyword.strip().casefold()
        if not needle:
            return []
        exact: List[Course] = []
        fuzzy: List[Course] = []
        for course in self._courses.values():
            if not _in_semesters(course, years, terms):
                continue
            fields = [course.title, *course.teachers]
            if any(needle in f.casefold() for f in fields):
                exact.append(course)
            elif contains_all_chars(course.title, needle):
                fuzzy.append(course)
        key = lambda c: (-c.year, -c.term, c.uid)  # noqa: E731
        return sorted(exact, key=key) + sorted(fuzzy, key=key)

    def get_course(self, uid: str) -> Optional[Course]:
        return self._courses.get(uid.strip().upper())

    def list_courses(self, years: Optional[Sequence[int]] = None,
                     terms: Optional[Sequence[int]] = None) -> List[Course]:
        return sorted(
            (c for c in self._courses.values() if _in_semesters(c, years, terms)),
            key=lambda c: (-c.year, -c.term, c.uid),
        )

    # =========================================================================
    # STUDENTS
    # =========================================================================

    def search_students(self, name: str) -> List[Student]:
        needle = name.strip()
        if not needle:
            return []
        found = [s for s in self._students.values() if needle in s.name]
        return sorted(found, key=lambda s: s.id)

    def get_student(self, student_id: str) -> Optional[Student]:
        return self._students.get(student_id.strip())

    # =========================================================================
    # CONTACTS
    # =========================================================================

    def search_contacts(self, query: str) -> List[Contact]:
        needle = query.strip().casefold()
        if not needle:
            return []
        exact = [c for c in self._contacts if needle in c.searchable.casefold()]
        seen = {id(c) for c in exact}
        fuzzy = [
            c for c in self._contacts
            if id(c) not in seen and contains_all_chars(c.searchable, needle)
        ]
        return exact + fuzzy

    # =========================================================================
    # PROGRAMS
    # =========================================================================

    def _summary(self, program: Program, years, terms) -> ProgramSummary:
        required = elective = 0
        for ref in program.courses:
            course = self._courses.get(ref.uid)
            if course is None or not _in_semesters(course, years, terms):
                continue
            if ref.required:
                required += 1
            else:
                elective += 1
        return ProgramSummary(
            name=program.name,
            category=program.category,
            url=program.url,
            required_count=required,
            elective_count=elective,
        )

    def all_programs(self, years: Optional[Sequence[int]] = None,
                     terms: Optional[Sequence[int]] = None) -> List[ProgramSummary]:
        return [self._summary(p, years, terms) for p in sorted(self._programs.values(), key=lambda p: p.name)]

    def search_programs(self, term: str, years: Optional[Sequence[int]] = None,
                        terms: Optional[Sequence[int]] = None) -> List[ProgramSummary]:
        """Substring match on program name."""
        needle = term.strip().casefold()
        if not needle:
            return []
        return [s for s in self.all_programs(years, terms) if needle in s.name.casefold()]

    def program_courses(self, name: str, years: Optional[Sequence[int]] = None,
                        terms: Optional[Sequence[int]] = None) -> List[ProgramCourse]:
        program = self._programs.get(name.strip())
        if program is None:
            return []
        out: List[ProgramCourse] = []
        for ref in program.courses:
            course = self._courses.get(ref.uid)
            if course is not None and _in_semesters(course, years, terms):
                out.append(ProgramCourse(course=course, course_type=ref.course_type))
        return out

    def course_programs(self, uid: str) -> List[str]:
        uid = uid.strip().upper()
        return sorted(p.name for p in self._programs.values() if any(r.uid == uid for r in p.courses))


__all__ = [
    "Semesters",
    "REQUIRED_COURSE",
    "ELECTIVE_COURSE",
    "Course",
    "Student",
    "Contact",
    "Program",
    "ProgramCourseRef",
    "ProgramSummary",
    "ProgramCourse",
    "SemesterLookup",
    "CourseStore",
    "StudentStore",
    "ContactStore",
    "ProgramStore",
    "semesters_for_date",
    "today_taipei",
    "InMemoryCatalog",
]

# FILE: app/modules/__init__.py
"""
Bot feature modules.

Registration order (keyword routing tries them in this order):
    contact, course, id, program, usage
"""

from app.modules.catalog import InMemoryCatalog, semesters_for_date
from app.modules.contact import ContactModule
from app.modules.course import CourseModule
from app.modules.id import IDModule
from app.modules.program import ProgramModule
from app.modules.usage import UsageModule

__all__ = [
    "InMemoryCatalog",
    "semesters_for_date",
    "ContactModule",
    "CourseModule",
    "IDModule",
    "ProgramModule",
    "UsageModule",
]

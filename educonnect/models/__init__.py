from .admin import Admin
from .teacher import Teacher, teacher_schools
from .school import School
from .registration_code import RegistrationCode
from .student import Student
from .subject import Subject
from .criteria import Criterion
from .grade import GradeEntry, PARTICIPATION
from .attendance import AttendanceRecord, AttendanceStatus
from .behavior import BehaviorRecord, BehaviorCategory
from .cache_entry import CacheEntry

__all__ = [
    "Admin",
    "Teacher",
    "teacher_schools",
    "School",
    "RegistrationCode",
    "Student",
    "Subject",
    "Criterion",
    "GradeEntry",
    "PARTICIPATION",
    "AttendanceRecord",
    "AttendanceStatus",
    "BehaviorRecord",
    "BehaviorCategory",
    "CacheEntry"
]

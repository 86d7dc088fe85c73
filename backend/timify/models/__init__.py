from timify.models.activity_log import ActivityLog  # noqa: F401
from timify.models.catalog_version import CatalogVersion  # noqa: F401
from timify.models.credit_limit import CreditLimit  # noqa: F401
from timify.models.enrollment import EnrollmentStatus, StudentEnrollment  # noqa: F401
from timify.models.faculty import Faculty  # noqa: F401
from timify.models.room import Room, RoomType  # noqa: F401
from timify.models.subject import Subject, SubjectType  # noqa: F401
from timify.models.timetable import Timetable, TimetableSlot, TimetableStatus  # noqa: F401
from timify.models.user import User, UserRole  # noqa: F401

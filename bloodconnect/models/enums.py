from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    DONOR = "donor"
    HOSPITAL = "hospital"
    SEEKER = "seeker"


class AccountStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BloodType(str, Enum):
    O_NEGATIVE = "O-"
    O_POSITIVE = "O+"
    A_NEGATIVE = "A-"
    A_POSITIVE = "A+"
    B_NEGATIVE = "B-"
    B_POSITIVE = "B+"
    AB_NEGATIVE = "AB-"
    AB_POSITIVE = "AB+"


class Urgency(str, Enum):
    NORMAL = "normal"
    EMERGENCY = "emergency"


class RequesterType(str, Enum):
    SEEKER = "seeker"
    HOSPITAL = "hospital"
    SYSTEM = "system"  # records created when a voluntary donation completes


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DonationStatus(str, Enum):
    ACCEPTED = "accepted"
    ON_THE_WAY = "on_the_way"
    REACHED = "reached"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VoluntaryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PreferredTime(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANY = "any"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    REQUEST = "request"
    DONATION = "donation"
    ANNOUNCEMENT = "announcement"


class AnnouncementStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class AnnouncementPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Audience(str, Enum):
    ALL = "all"
    DONOR = "donor"
    HOSPITAL = "hospital"
    SEEKER = "seeker"


def values(enum_cls):
    return [member.value for member in enum_cls]

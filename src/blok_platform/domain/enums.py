"""Domain enumerations for the Blok resident messaging core.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class MessageIntent(str, Enum):
    """Classified purpose of a resident's message."""

    MAINTENANCE_REQUEST = "maintenance_request"
    GENERAL_QUESTION = "general_question"
    NOISE_COMPLAINT = "noise_complaint"
    VISITOR_ACCESS = "visitor_access"
    HOA_FEE_QUESTION = "hoa_fee_question"
    AMENITY_RESERVATION = "amenity_reservation"
    DOCUMENT_REQUEST = "document_request"
    EMERGENCY = "emergency"
    OTHER = "other"

    @classmethod
    def coerce(cls, value) -> "MessageIntent":
        """Map raw model output onto the closed set, falling back to OTHER."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


class Priority(str, Enum):
    """Urgency assigned to a message or ticket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"

    @classmethod
    def coerce(cls, value) -> "Priority":
        """Map raw model output onto the closed set, falling back to MEDIUM."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


class RouteTarget(str, Enum):
    """Who the classifier says should handle a message."""

    OWNER = "owner"
    RENTER = "renter"
    ADMIN = "admin"
    BOTH = "both"

    @classmethod
    def coerce(cls, value) -> "RouteTarget":
        """Map raw model output onto the closed set, falling back to ADMIN."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.ADMIN


class Recipient(str, Enum):
    """Concrete role that receives a routed message."""

    OWNER = "owner"
    RENTER = "renter"
    ADMIN = "admin"


class RequiredAction(str, Enum):
    """Side effects the routing policy can ask the dispatcher to run."""

    PERSIST_MESSAGE = "persist_message"
    CREATE_TICKET = "create_ticket"
    NOTIFY_HUMAN = "notify_human"
    SEND_REPLY = "send_reply"


class ResidentType(str, Enum):
    """Relationship of a resident to their unit."""

    OWNER = "owner"
    RENTER = "renter"


class Language(str, Enum):
    """Supported resident languages."""

    ES = "es"
    EN = "en"


class Channel(str, Enum):
    """Messaging channel a conversation runs over."""

    WHATSAPP = "whatsapp"
    SMS = "sms"
    EMAIL = "email"


class SenderType(str, Enum):
    """Author of a stored conversation message."""

    RESIDENT = "resident"
    AI = "ai"
    ADMIN = "admin"


class ConversationStatus(str, Enum):
    """Conversation lifecycle. Transitions past ACTIVE are admin actions."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class TicketStatus(str, Enum):
    """Maintenance ticket lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ReplySource(str, Enum):
    """Where the automated reply text came from."""

    CLASSIFIER = "classifier"
    KNOWLEDGE = "knowledge"
    NONE = "none"


class NotificationType(str, Enum):
    """Dashboard notification categories."""

    NEW_MESSAGE = "new_message"
    MAINTENANCE_REQUEST = "maintenance_request"
    EMERGENCY = "emergency"

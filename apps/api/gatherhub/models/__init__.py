from gatherhub.models.base import Base
from gatherhub.models.event import Event
from gatherhub.models.notification import Notification
from gatherhub.models.registration import Registration
from gatherhub.models.ticket import Ticket
from gatherhub.models.user import User

__all__ = ["Base", "User", "Event", "Registration", "Ticket", "Notification"]

"""SQLAlchemy models."""

from txrouter.models.base import Base
from txrouter.models.project import Project
from txrouter.models.routing_history import RoutingEvent, RoutingRun
from txrouter.models.routing_rule import RoutingRule
from txrouter.models.transaction import Transaction

__all__ = [
    "Base",
    "Project",
    "RoutingRule",
    "Transaction",
    "RoutingEvent",
    "RoutingRun",
]

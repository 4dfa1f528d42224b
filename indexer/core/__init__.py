"""indexer.core

Core primitives: the event contract, the journal and snapshot store, entity records.

Handlers, the dispatcher and the query layer depend on this package, never the reverse.
"""

from .config import Config
from .database import Database
from .events import ChainEvent, ContractRole, EventName
from .models import EntityType

__all__ = ["ChainEvent", "Config", "ContractRole", "Database", "EntityType", "EventName"]

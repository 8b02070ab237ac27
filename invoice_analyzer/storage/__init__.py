from .db_init import start_connection, create_validation_rules, create_indexes
from .database import save_invoice

__all__ = [
    "start_connection",
    "create_validation_rules",
    "create_indexes",
    "save_invoice",
]

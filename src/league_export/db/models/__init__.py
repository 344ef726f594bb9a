from league_export.db.models.kv_entry import KeyValueEntry

__all__ = [
    "KeyValueEntry",
]

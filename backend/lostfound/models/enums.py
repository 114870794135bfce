from sqlalchemy import Enum

# Stored as VARCHAR (native_enum=False) so the same models run on Postgres and on SQLite in tests.

ITEM_TYPES = ("lost", "found")
ITEM_STATUSES = ("active", "resolved")
NOTIFICATION_TYPES = ("new_item", "match_found", "item_claimed", "new_message")
OUTBOX_STATUSES = ("pending", "done", "failed")

item_type_enum = Enum(*ITEM_TYPES, name="item_type_enum", native_enum=False, length=16)
item_status_enum = Enum(*ITEM_STATUSES, name="item_status_enum", native_enum=False, length=16)
notification_type_enum = Enum(*NOTIFICATION_TYPES, name="notification_type_enum", native_enum=False, length=32)
outbox_status_enum = Enum(*OUTBOX_STATUSES, name="outbox_status_enum", native_enum=False, length=16)

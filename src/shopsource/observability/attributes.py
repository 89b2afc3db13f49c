"""
Span attribute names shared by the store, repository, buses and handlers.

Messaging and database attributes follow the OpenTelemetry semantic
conventions; everything else lives under the ``shopsource.`` namespace.
"""

# Aggregates and events
ATTR_AGGREGATE_ID = "shopsource.aggregate.id"
ATTR_AGGREGATE_TYPE = "shopsource.aggregate.type"
ATTR_EVENT_ID = "shopsource.event.id"
ATTR_EVENT_TYPE = "shopsource.event.type"
ATTR_EVENT_COUNT = "shopsource.event.count"
ATTR_VERSION = "shopsource.version"
ATTR_EXPECTED_VERSION = "shopsource.expected_version"
ATTR_FROM_VERSION = "shopsource.from_version"
ATTR_FROM_POSITION = "shopsource.from_position"

# Handlers and commands
ATTR_HANDLER_NAME = "shopsource.handler.name"
ATTR_HANDLER_COUNT = "shopsource.handler.count"
ATTR_HANDLER_SUCCESS = "shopsource.handler.success"
ATTR_COMMAND_TYPE = "shopsource.command.type"
ATTR_TARGET_SERVICE = "shopsource.command.target_service"
ATTR_RETRY_COUNT = "shopsource.retry.count"

# OpenTelemetry semantic conventions
ATTR_DB_SYSTEM = "db.system"
ATTR_DB_OPERATION = "db.operation"
ATTR_MESSAGING_SYSTEM = "messaging.system"
ATTR_MESSAGING_DESTINATION = "messaging.destination"
ATTR_MESSAGING_OPERATION = "messaging.operation"

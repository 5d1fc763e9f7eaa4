"""Permission kinds that can be granted to roles on address prefixes."""

import enum


class Permission(str, enum.Enum):
    """Broker operations subject to authorization."""

    BROWSE = "browse"
    CONSUME = "consume"

    CREATE_ADDRESS = "create-address"
    CREATE_DURABLE_QUEUE = "create-durable-queue"
    CREATE_NON_DURABLE_QUEUE = "create-non-durable-queue"

    DELETE_ADDRESS = "delete-address"
    DELETE_DURABLE_QUEUE = "delete-durable-queue"
    DELETE_NON_DURABLE_QUEUE = "delete-non-durable-queue"

    MANAGE = "manage"
    SEND = "send"

"""
Dispatch layer: circle push notifications.

- ``models``: Recipient, NotificationPayload, tagged per-recipient results
- ``ports``: directory / keyed store protocols consumed by the engine
- ``token_resolver``: inline token first, device-token store second
- ``enrichment``: last known location appended to group notifications
- ``engine``: direct and group dispatch with bounded fan-out

Dispatch code must NOT import transport modules.
"""

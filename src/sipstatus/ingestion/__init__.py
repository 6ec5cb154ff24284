"""Ingestion layer.

Adapters that receive raw AMI records and emit normalized
:class:`~sipstatus.state.events.StatusUpdate` events.
"""

__all__: list[str] = []

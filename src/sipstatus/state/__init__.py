"""State/store layer.

This package is the system of record for extension status: every ingestion
path (bulk sync, live events, manual test updates) converts its input into a
:class:`~sipstatus.state.events.StatusUpdate` and only the store applies it.
"""

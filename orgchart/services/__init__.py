"""
Service layer package.

The hierarchy engine (``identifiers``, ``tree_builder``, ``pending``,
``reparent``) is pure Python with no Flask dependency.  The remaining
services bind it to the host: the API client, the audit trail, exports,
and ``hierarchy_service`` which routes and CLI commands call.

Import services in route modules as needed::

    from orgchart.services import hierarchy_service
"""

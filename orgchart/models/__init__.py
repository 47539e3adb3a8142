"""
Model package.

  - organization.py -> snapshot dataclasses for API records (not persisted)
  - audit.py        -> hierarchy audit trail (SQLAlchemy)

Importing the package registers ``AuditLog`` with the SQLAlchemy
metadata so ``flask db`` commands can discover it.
"""

# -- API snapshots ---------------------------------------------------------
from orgchart.models.organization import (  # noqa: F401
    Department,
    Position,
    TreeNode,
)

# -- audit table -----------------------------------------------------------
from orgchart.models.audit import AuditLog  # noqa: F401

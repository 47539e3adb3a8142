"""
Hierarchy blueprint — JSON endpoints behind the drag-and-drop org chart.

The browser renders the forest and reports gestures; everything else
(tree building, head transfers, busy tracking) happens server-side.
"""

from flask import Blueprint

bp = Blueprint("hierarchy", __name__)

# Import routes after blueprint creation to avoid circular imports.
from orgchart.blueprints.hierarchy import routes  # noqa: E402, F401

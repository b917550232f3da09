"""Top-level package for the budget dashboard.

The primary modules are:

* ``chart_data`` - derived series for the spending and savings charts
* ``resources`` - cached CRUD services over the budget REST API
* ``visualization`` - functions that generate Plotly figures
* ``dashboard`` - a Streamlit app that ties everything together

To run the dashboard from the command line you can execute:

```bash
streamlit run budget_dashboard/dashboard.py
```
"""

from . import chart_data  # noqa: F401  # re-exported for convenience
from . import visualization  # noqa: F401  # re-exported for convenience
# Streamlit may not be installed in every environment (e.g. during unit
# testing), in which case ``dashboard`` is ``None``.
try:
    from . import dashboard  # type: ignore  # noqa: F401
except ModuleNotFoundError:
    dashboard = None  # type: ignore


__all__ = ["chart_data", "visualization", "dashboard"]

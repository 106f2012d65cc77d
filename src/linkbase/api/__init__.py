"""REST API for Linkbase.

Example:
    ```bash
    uvicorn linkbase.api:app --reload
    ```
"""

from .app import app, create_app
from .router import router

__all__ = ["app", "create_app", "router"]

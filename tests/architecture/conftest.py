"""Architecture test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from pytestarch import EvaluableArchitecture, LayeredArchitecture, get_evaluable_architecture

# Resolve paths relative to this file:
#   tests/architecture/conftest.py -> tests/ -> project root
_TESTS_DIR = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _TESTS_DIR.parent
_SERVICE_PKG = _PROJECT_ROOT / "src" / "errand_board_service"


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    """Build the evaluable architecture graph for errand_board_service.

    Uses the package as both root and module path so module names are
    clean (e.g. 'errand_board_service.routers.tasks').
    """
    return get_evaluable_architecture(str(_SERVICE_PKG), str(_SERVICE_PKG))


@pytest.fixture(scope="session")
def layered_arch() -> LayeredArchitecture:
    """Define the service's layered architecture.

    Layers (top to bottom):
        routers   - HTTP endpoint handlers (thin wrappers)
        core      - App state, lifespan, middleware, exception handlers
        services  - Task lifecycle, ratings, document store (no FastAPI imports)
    """
    return (
        LayeredArchitecture()
        .layer("routers")
        .containing_modules(["errand_board_service.routers"])
        .layer("core")
        .containing_modules(["errand_board_service.core"])
        .layer("services")
        .containing_modules(["errand_board_service.services"])
    )

"""
L5 Orchestration — top-level install workflows.
"""

from formulary.core.services.install.orchestration.installer import (  # noqa: F401
    OperationResult,
    fetch_formula,
    find_conflicts,
    install_formula,
    is_intact,
    run_formula_test,
    uninstall_formula,
)

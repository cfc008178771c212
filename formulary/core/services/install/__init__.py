"""
Install service — package re-exports.

Each symbol lives in its single-responsibility module inside the
appropriate layer (domain → detection → execution → orchestration)::

    from formulary.core.services.install import install_formula
"""

# ── L3: Detection ──
from formulary.core.services.install.detection.platform import (  # noqa: F401
    detect_arch,
    detect_platform,
)

# ── L4: Execution ──
from formulary.core.services.install.execution.download import (  # noqa: F401
    fetch_artifact,
    verify_checksum,
)
from formulary.core.services.install.execution.receipts import (  # noqa: F401
    list_receipts,
    load_receipt,
)
from formulary.core.services.install.execution.smoke import run_smoke_test  # noqa: F401

# ── L5: Orchestration ──
from formulary.core.services.install.orchestration.installer import (  # noqa: F401
    OperationResult,
    fetch_formula,
    install_formula,
    run_formula_test,
    uninstall_formula,
)

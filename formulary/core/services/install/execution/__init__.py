"""
L4 Execution — ``__init__.py`` re-exports all execution functions.

These functions WRITE to the system: downloads, file moves, receipt
persistence, subprocess calls.
"""

from formulary.core.services.install.execution.commit import (  # noqa: F401
    commit_keg,
    rollback_commit,
)
from formulary.core.services.install.execution.download import (  # noqa: F401
    fetch_artifact,
    file_sha256,
    verify_checksum,
)
from formulary.core.services.install.execution.extract import (  # noqa: F401
    archive_type,
    extract_archive,
    working_dir,
)
from formulary.core.services.install.execution.receipts import (  # noqa: F401
    delete_receipt,
    list_receipts,
    load_receipt,
    save_receipt,
)
from formulary.core.services.install.execution.smoke import run_smoke_test  # noqa: F401
from formulary.core.services.install.execution.steps import run_install_steps  # noqa: F401
from formulary.core.services.install.execution.subprocess_runner import (  # noqa: F401
    run_subprocess,
)

"""
L1 Domain — no writes, no subprocess.
"""

from formulary.core.services.install.domain.download_helpers import (  # noqa: F401
    cache_filename,
    fmt_size,
    should_log_progress,
)
from formulary.core.services.install.domain.paths import (  # noqa: F401
    UnsafePathError,
    archive_member_ok,
    is_within,
    resolve_inside,
)
from formulary.core.services.install.domain.rollback import generate_rollback  # noqa: F401

from ybuild.common.utils.retry import (
    RetryConfig,
    RetryContext,
    async_with_retry,
)
from ybuild.common.utils.hash_utils import (
    compute_hash,
    compute_signature,
)
from ybuild.common.utils.file_utils import (
    ensure_directory,
    create_temp_sibling,
    publish_directory,
    atomic_write_bytes,
    remove_tree,
)
from ybuild.common.utils.time_utils import (
    local_now,
    format_duration,
    format_clock,
)

__all__ = [
    "RetryConfig",
    "RetryContext",
    "async_with_retry",
    "compute_hash",
    "compute_signature",
    "ensure_directory",
    "create_temp_sibling",
    "publish_directory",
    "atomic_write_bytes",
    "remove_tree",
    "local_now",
    "format_duration",
    "format_clock",
]

from .hashing import content_digest, md5_hash, short_digest
from .redact import redact

__all__ = [
    "content_digest",
    "md5_hash",
    "redact",
    "short_digest",
]

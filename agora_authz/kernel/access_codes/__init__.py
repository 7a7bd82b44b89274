"""
Access-Code Lifecycle - issue, validate and consume bearer codes.
"""

from agora_authz.kernel.access_codes.access_code_service import AccessCodeService
from agora_authz.kernel.access_codes.generator import generate_candidate, is_acceptable, normalize_code
from agora_authz.kernel.access_codes.results import ConsumeResult, ValidationReason, ValidationResult

__all__ = [
    "AccessCodeService",
    "generate_candidate",
    "is_acceptable",
    "normalize_code",
    "ConsumeResult",
    "ValidationReason",
    "ValidationResult",
]

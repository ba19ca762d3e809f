"""服务层能力导出集合。"""

from roadpress_admin.services.admission import Admission, classify_path, find_rule_overlaps
from roadpress_admin.services.debug_log import purge_debug_logs, record_debug_log
from roadpress_admin.services.passwords import hash_password, verify_password
from roadpress_admin.services.pending_auth import PendingAuthLedger, get_pending_auth_ledger
from roadpress_admin.services.plugin_auth import Invalid, Valid, require_plugin_license, validate_plugin_request
from roadpress_admin.services.session_auth import (
    Authenticated,
    NeedsSecondFactor,
    Rejected,
    complete_two_factor,
    current_session,
    login,
    normalize_email,
)

__all__ = [
    "Admission",
    "Authenticated",
    "Invalid",
    "NeedsSecondFactor",
    "PendingAuthLedger",
    "Rejected",
    "Valid",
    "classify_path",
    "complete_two_factor",
    "current_session",
    "find_rule_overlaps",
    "get_pending_auth_ledger",
    "hash_password",
    "login",
    "normalize_email",
    "purge_debug_logs",
    "record_debug_log",
    "require_plugin_license",
    "validate_plugin_request",
    "verify_password",
]

"""
Authorization gate - one policy table mapping each mutating operation to the
single role allowed to perform it. Always the first check of an operation.
"""

from dataclasses import dataclass
from typing import Dict

from . import config
from .errors import UnauthorizedAccess

OP_RECORD_COLLECTION = "record_collection"
OP_ATTEST_QUALITY = "attest_quality"
OP_TRANSFER_CUSTODY = "transfer_custody"
OP_CREATE_BATCH = "create_batch"
OP_UPDATE_ZONES = "update_zones"
OP_INITIATE_RECALL = "initiate_recall"

OPERATION_ROLES: Dict[str, str] = {
    OP_RECORD_COLLECTION: "collector",
    OP_ATTEST_QUALITY: "lab",
    OP_TRANSFER_CUSTODY: "processor",
    OP_CREATE_BATCH: "manufacturer",
    OP_UPDATE_ZONES: "regulator",
    OP_INITIATE_RECALL: "regulator",
}

ROLE_DESCRIPTIONS = {
    "collector": "registered collectors",
    "lab": "registered lab technicians",
    "processor": "registered processors",
    "manufacturer": "registered manufacturers",
    "regulator": "regulator admins",
}


@dataclass(frozen=True)
class Caller:
    """Resolved caller identity: who is calling and on behalf of which organization."""
    caller_id: str
    org_tag: str


def required_org(operation: str) -> str:
    """Organization tag required for operation."""
    role = OPERATION_ROLES[operation]
    return config.get_role_orgs()[role]


def authorize(operation: str, caller: Caller) -> None:
    """Raise UnauthorizedAccess unless caller's organization holds the operation's role."""
    if operation not in OPERATION_ROLES:
        raise UnauthorizedAccess(f"Unknown operation: {operation}")

    if caller is None or caller.org_tag != required_org(operation):
        role = OPERATION_ROLES[operation]
        raise UnauthorizedAccess(
            f"Only {ROLE_DESCRIPTIONS[role]} can perform {operation}"
        )

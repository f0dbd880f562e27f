"""Vendor approval by the marketplace administrator."""

from .access import is_administrator
from .clients import DataStoreClient
from .errors import AuthorizationError
from .logging_config import get_logger
from .models import Profile, Vendor

log = get_logger(__name__)

DEFAULT_REJECTION_REASON = "Application rejected by admin"


def _require_administrator(profile: Profile) -> None:
    if not is_administrator(profile):
        log.warning(f"[Vendor] Zugriff verweigert für {profile.role.value} {profile.id}.")
        raise AuthorizationError("Only the administrator can review vendor applications")


def approve_vendor(vendor_id: str, profile: Profile, store: DataStoreClient) -> Vendor:
    _require_administrator(profile)
    vendor = store.update_vendor(vendor_id, {"verified": True, "rejection_reason": None})
    log.info(f"[Vendor: {vendor_id}] Anbieter freigegeben.")
    return vendor


def reject_vendor(
    vendor_id: str, profile: Profile, store: DataStoreClient, reason: str = DEFAULT_REJECTION_REASON
) -> Vendor:
    """
    Marks a vendor application as rejected.

    Args:
        vendor_id (str): Vendor to reject.
        profile (Profile): Acting principal; must be the administrator.
        store (DataStoreClient): Hosted data store.
        reason (str): Shown to the applicant. Blank reasons fall back to the default.

    Raises:
        AuthorizationError: The principal is not the administrator.
        NotFoundError: The vendor does not exist.
    """
    _require_administrator(profile)
    vendor = store.update_vendor(vendor_id, {
        "verified": False,
        "rejection_reason": reason.strip() or DEFAULT_REJECTION_REASON,
    })
    log.info(f"[Vendor: {vendor_id}] Anbieter abgelehnt: {vendor.rejection_reason}")
    return vendor
